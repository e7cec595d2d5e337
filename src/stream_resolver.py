"""
Resolve a content code into its HLS manifest URL.

The origin only reveals the manifest to a browser-rendered player, so the
resolver loads the player page in the shared headless browser, starts
playback, and watches the page's network traffic for the first media segment
request. The manifest lives next to that segment.
"""

import re
import asyncio
import logging
from typing import Callable, List, Optional
from urllib.parse import quote, urlsplit, urlunsplit

from playwright.async_api import Page, TimeoutError as PlaywrightTimeoutError

from browser_manager import BrowserSessionManager
from cache import TTLCache
from config import settings
from errors import ResolverError, StreamNotFoundError, UpstreamError, UpstreamTimeout
from inflight import SingleFlight
from stats import ServiceStats

logger = logging.getLogger(__name__)

# Clicks the player's play control, then forces muted playback of any <video>
PLAYER_START_SCRIPT = """
(selector) => {
    const button = document.querySelector(selector);
    if (button) {
        button.click();
    }
    const video = document.querySelector('video');
    if (video) {
        video.muted = true;
        video.play().catch(() => {});
    }
}
"""


def segment_pattern_predicate(pattern: str) -> Callable[[str], bool]:
    regex = re.compile(pattern, re.IGNORECASE)
    return lambda url: regex.search(url) is not None


def derive_manifest_url(segment_url: str, manifest_filename: str = "master.m3u8") -> str:
    """Swap the segment's file name for the manifest file name.

    >>> derive_manifest_url("https://cdn/stream/abc/segment0.ts?t=1")
    'https://cdn/stream/abc/master.m3u8?t=1'
    """
    parts = urlsplit(segment_url)
    directory = parts.path.rpartition("/")[0]
    return urlunsplit(parts._replace(path=f"{directory}/{manifest_filename}"))


class StreamResolver:
    def __init__(
        self,
        cache: TTLCache,
        browser_manager: BrowserSessionManager,
        stats: Optional[ServiceStats] = None,
        page_url_template: Optional[str] = None,
        segment_predicate: Optional[Callable[[str], bool]] = None,
        manifest_filename: Optional[str] = None,
        play_selector: Optional[str] = None,
        navigation_timeout: Optional[float] = None,
        segment_wait_timeout: Optional[float] = None,
    ):
        self.cache = cache
        self.browser_manager = browser_manager
        self.stats = stats or ServiceStats()
        self.page_url_template = page_url_template or settings.ORIGIN_PAGE_URL_TEMPLATE
        self.segment_predicate = segment_predicate or segment_pattern_predicate(
            settings.SEGMENT_URL_PATTERN)
        self.manifest_filename = manifest_filename or settings.MANIFEST_FILENAME
        self.play_selector = play_selector or settings.PLAY_BUTTON_SELECTOR
        self.navigation_timeout = navigation_timeout or settings.NAVIGATION_TIMEOUT
        self.segment_wait_timeout = segment_wait_timeout or settings.SEGMENT_WAIT_TIMEOUT
        self._inflight = SingleFlight("resolve")

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def build_page_url(self, code: str) -> str:
        return self.page_url_template.format(code=quote(code, safe=''))

    async def resolve(self, code: str) -> str:
        """Return the manifest URL for code, from cache or a fresh capture."""
        cached = self.cache.get(code)
        if cached is not None:
            self.stats.record_cache_hit()
            logger.info(f"Manifest cache HIT for {code}")
            return cached

        self.stats.record_cache_miss()
        return await self._inflight.do(code, lambda: self._resolve_uncached(code))

    async def _resolve_uncached(self, code: str) -> str:
        page_url = self.build_page_url(code)
        try:
            segment_url = await self._capture_segment_url(page_url)
        except ResolverError:
            raise
        except Exception as e:
            logger.error(f"Error resolving {code}: {e}")
            raise UpstreamError(str(e)) from e

        if segment_url is None:
            raise StreamNotFoundError(f"No media segment found for {code}")

        manifest_url = derive_manifest_url(segment_url, self.manifest_filename)
        self.cache.put(code, manifest_url)
        self.stats.record_resolved(code)
        logger.info(f"Resolved and cached {code}: {manifest_url}")
        return manifest_url

    async def _capture_segment_url(self, page_url: str) -> Optional[str]:
        captured: List[str] = []
        segment_seen = asyncio.Event()

        def on_request(request):
            if not captured and self.segment_predicate(request.url):
                logger.info(f"Intercepted media segment request: {request.url}")
                captured.append(request.url)
                segment_seen.set()

        async with self.browser_manager.session() as browser:
            page = await browser.new_page()
            try:
                page.on("request", on_request)
                await self._start_player(page, page_url, captured, segment_seen)
            finally:
                try:
                    await page.close()
                except Exception as e:
                    logger.debug(f"Error closing page for {page_url}: {e}")

        return captured[0] if captured else None

    async def _start_player(
        self, page: Page, page_url: str, captured: List[str], segment_seen: asyncio.Event
    ):
        logger.debug(f"Loading player page {page_url}")
        try:
            await page.goto(
                page_url,
                wait_until="networkidle",
                timeout=self.navigation_timeout * 1000,
            )
        except PlaywrightTimeoutError as e:
            if not captured:
                raise UpstreamTimeout(
                    f"Timed out loading {page_url} after {self.navigation_timeout}s") from e
            # Streaming players rarely go idle; the segment is all we need
            logger.warning(f"Page {page_url} never went idle, using captured segment")

        await page.evaluate(PLAYER_START_SCRIPT, self.play_selector)

        # Already-seen responses never satisfy wait_for_response
        if captured:
            return

        await self._wait_for_segment(page, page_url, captured, segment_seen)

    async def _wait_for_segment(
        self, page: Page, page_url: str, captured: List[str], segment_seen: asyncio.Event
    ):
        """Wait until a segment request or response shows up, whichever is first.

        The response can land before wait_for_response is registered, so the
        request hook's event is raced against it.
        """
        response_wait = asyncio.ensure_future(page.wait_for_response(
            lambda response: self.segment_predicate(response.url),
            timeout=self.segment_wait_timeout * 1000,
        ))
        request_seen = asyncio.ensure_future(segment_seen.wait())
        try:
            await asyncio.wait(
                {response_wait, request_seen}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            response_wait.cancel()
            request_seen.cancel()

        if not response_wait.done() or response_wait.cancelled():
            return

        error = response_wait.exception()
        if error is None:
            if not captured:
                captured.append(response_wait.result().url)
        elif captured:
            logger.debug(f"Ignoring response wait failure after capture: {error}")
        elif isinstance(error, PlaywrightTimeoutError):
            logger.warning(
                f"No media segment response within {self.segment_wait_timeout}s for {page_url}")
        else:
            raise error
