"""
Shared headless browser with lazy launch and idle teardown.

One Chromium process serves every resolution. Callers lease it through
acquire()/release() (or the session() context manager); the idle timer is
only armed once no lease is outstanding, so a session is never closed under
a caller that is still using it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

from config import settings
from errors import BrowserLaunchError, UpstreamTimeout

logger = logging.getLogger(__name__)

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--autoplay-policy=no-user-gesture-required",
]


class BrowserSession:
    """A running Chromium instance plus the Playwright driver that owns it."""

    def __init__(self, playwright: Playwright, browser: Browser):
        self.playwright = playwright
        self.browser = browser

    async def new_page(self) -> Page:
        return await self.browser.new_page()

    async def close(self):
        try:
            await self.browser.close()
        finally:
            await self.playwright.stop()


async def launch_chromium_session() -> BrowserSession:
    playwright = await async_playwright().start()
    try:
        browser = await playwright.chromium.launch(
            headless=settings.BROWSER_HEADLESS,
            args=CHROMIUM_ARGS,
            executable_path=settings.BROWSER_EXECUTABLE_PATH or None,
        )
    except BaseException:
        await playwright.stop()
        raise
    return BrowserSession(playwright, browser)


class BrowserSessionManager:
    def __init__(
        self,
        launcher: Optional[Callable[[], Awaitable[BrowserSession]]] = None,
        idle_timeout: Optional[float] = None,
        launch_timeout: Optional[float] = None,
    ):
        self._launcher = launcher or launch_chromium_session
        self.idle_timeout = settings.BROWSER_IDLE_TIMEOUT if idle_timeout is None else idle_timeout
        self.launch_timeout = settings.BROWSER_LAUNCH_TIMEOUT if launch_timeout is None else launch_timeout

        self._session: Optional[BrowserSession] = None
        self._lock = asyncio.Lock()
        self._active_leases = 0
        self._idle_task: Optional[asyncio.Task] = None
        self.launch_count = 0

    @property
    def is_running(self) -> bool:
        return self._session is not None

    @property
    def active_leases(self) -> int:
        return self._active_leases

    async def acquire(self) -> BrowserSession:
        """Return the shared session, launching it first if needed.

        Each call takes a lease that must be handed back with release().
        """
        async with self._lock:
            self._cancel_idle_timer()
            if self._session is None:
                self._session = await self._launch()
            self._active_leases += 1
            return self._session

    def release(self):
        if self._active_leases == 0:
            logger.warning("Browser session released more times than acquired")
            return
        self._active_leases -= 1
        if self._active_leases == 0 and self._session is not None:
            self._schedule_idle_teardown()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[BrowserSession]:
        browser = await self.acquire()
        try:
            yield browser
        finally:
            self.release()

    async def shutdown(self):
        """Close the browser immediately (application shutdown)."""
        self._cancel_idle_timer()
        async with self._lock:
            if self._session is not None:
                logger.info("Closing headless browser on shutdown")
                await self._close_session()
            self._active_leases = 0

    async def _launch(self) -> BrowserSession:
        logger.info("Launching headless browser...")
        try:
            session = await asyncio.wait_for(self._launcher(), timeout=self.launch_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Browser launch timed out after {self.launch_timeout}s")
            raise UpstreamTimeout(
                f"Browser launch timed out after {self.launch_timeout}s") from e
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            raise BrowserLaunchError(f"Browser launch failed: {e}") from e
        self.launch_count += 1
        logger.info("Headless browser started and ready for reuse")
        return session

    def _schedule_idle_teardown(self):
        self._cancel_idle_timer()
        self._idle_task = asyncio.create_task(self._idle_teardown(self._session))

    def _cancel_idle_timer(self):
        if self._idle_task is not None:
            self._idle_task.cancel()
            self._idle_task = None

    async def _idle_teardown(self, session: BrowserSession):
        await asyncio.sleep(self.idle_timeout)
        async with self._lock:
            # A lease may have been taken, or the session replaced, while we slept
            if self._session is not session or self._active_leases > 0:
                return
            self._idle_task = None
            logger.info(
                f"Headless browser idle for {self.idle_timeout}s, closing it")
            await self._close_session()

    async def _close_session(self):
        session, self._session = self._session, None
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Error closing headless browser: {e}")
