#!/usr/bin/env python3
"""
Test runner for m3u8-resolver

Usage:
    python run_tests.py                  # Everything under tests/
    python run_tests.py --unit           # Component tests only (no HTTP app)
    python run_tests.py --integration    # HTTP API tests only
    python run_tests.py --coverage       # Add a terminal coverage report
    python run_tests.py -k rewrite       # Forward a pytest -k expression
"""

import sys
import subprocess
import argparse


def build_pytest_command(args):
    """Translate runner options into a pytest invocation"""
    cmd = [sys.executable, "-m", "pytest", "tests/"]

    if args.verbose:
        cmd.append("-vv")

    if args.unit:
        cmd.extend(["-m", "not integration"])
    elif args.integration:
        cmd.extend(["-m", "integration"])

    if args.keyword:
        cmd.extend(["-k", args.keyword])

    if args.coverage:
        cmd.extend(["--cov=src", "--cov-report=term-missing"])

    return cmd


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run tests for m3u8-resolver")
    selection = parser.add_mutually_exclusive_group()
    selection.add_argument("--unit", action="store_true",
                           help="Run only component tests")
    selection.add_argument("--integration", action="store_true",
                           help="Run only HTTP API tests")
    parser.add_argument("--coverage", action="store_true",
                        help="Report coverage of src/")
    parser.add_argument("-k", dest="keyword",
                        help="Only run tests matching this pytest expression")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Verbose output")
    return parser.parse_args(argv)


def main(argv=None):
    cmd = build_pytest_command(parse_args(argv))
    print(f"Running: {' '.join(cmd)}")
    exit_code = subprocess.run(cmd).returncode

    if exit_code == 0:
        print("\n✅ All tests passed!")
    else:
        print(f"\n❌ Tests failed with exit code {exit_code}")

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
