"""
Error types raised by the resolver and the proxy.
Routes in api.py map each kind onto an HTTP status.
"""

from typing import Optional


class ResolverError(Exception):
    """Base class for every failure the service reports to clients."""


class StreamNotFoundError(ResolverError):
    """The player never requested a media segment."""


class BadRequestError(ResolverError):
    """The proxy target is missing or not an acceptable URL."""


class UpstreamError(ResolverError):
    """The browser or the upstream HTTP server failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamTimeout(UpstreamError):
    """A navigation, wait, launch or fetch exceeded its bound."""


class BrowserLaunchError(UpstreamError):
    """The headless browser could not be started."""
