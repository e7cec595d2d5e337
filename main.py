#!/usr/bin/env python3
"""
m3u8-resolver - Main Entry Point
Resolves content codes into HLS manifests with a headless browser and
proxies them with URI rewriting and in-memory caching.
"""

import uvicorn
import logging
import sys
import os
import asyncio

# Add the src directory to Python path so local modules in `src/` can be imported
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

# Import configs AFTER setting up the path
from config import settings, VERSION


def main():
    """Main function to start the m3u8-resolver server."""

    # Try to use uvloop for better async performance
    try:
        import uvloop
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        use_uvloop = True
    except ImportError:
        use_uvloop = False

    # Configure logging
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger = logging.getLogger(__name__)
    logger.info("="*60)
    logger.info(
        f"⚡️ Starting m3u8-resolver v{VERSION} on {settings.HOST}:{settings.PORT}")
    logger.info("="*60)
    logger.info(f"ℹ️  Log level set to: {settings.LOG_LEVEL}")
    if use_uvloop:
        logger.info("✅ Using uvloop for optimized async I/O performance")
    else:
        logger.info(
            "✅ Using standard asyncio (install uvloop for better performance)")

    logger.info(
        f"✅ Cache TTL {settings.CACHE_TTL}s, resolution cache {settings.RESOLUTION_CACHE_SIZE}, "
        f"proxy cache {settings.PROXY_CACHE_SIZE}")
    logger.info(
        f"✅ Headless browser launched on demand, closed after {settings.BROWSER_IDLE_TIMEOUT}s idle")
    if settings.BROWSER_EXECUTABLE_PATH:
        logger.info(f"ℹ️  Browser executable: {settings.BROWSER_EXECUTABLE_PATH}")

    if settings.RELOAD:
        logger.info("🔄 Auto-reload is enabled.")

    # Start the server using settings from the config object
    uvicorn.run(
        "api:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
        loop="uvloop" if use_uvloop and not settings.RELOAD else "asyncio"
    )


if __name__ == "__main__":
    main()
