"""
Caching reverse proxy for playlists and segments.

Playlists are rewritten so every URI inside them routes back through the
proxy; everything else is passed through untouched.
"""

import httpx
import logging
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import urlparse

from cache import TTLCache
from config import settings
from errors import BadRequestError, UpstreamError, UpstreamTimeout
from inflight import SingleFlight
from m3u8_rewriter import rewrite_playlist
from stats import ServiceStats

logger = logging.getLogger(__name__)

HLS_CONTENT_TYPE = "application/vnd.apple.mpegurl"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
HLS_CONTENT_TYPES = (
    "application/vnd.apple.mpegurl",
    "application/x-mpegurl",
    "audio/mpegurl",
    "audio/x-mpegurl",
)


@dataclass(frozen=True)
class ProxiedResource:
    body: bytes
    content_type: str
    cached: bool = False


def validate_target_url(url: Optional[str]) -> str:
    """Validate URL format and security"""
    if not url or not url.strip():
        raise BadRequestError("URL cannot be empty")

    url = url.strip()
    try:
        parsed = urlparse(url)
    except ValueError:
        raise BadRequestError("Invalid URL format")

    if parsed.scheme.lower() not in ['http', 'https']:
        raise BadRequestError("URL must use HTTP or HTTPS protocol")

    if not parsed.netloc:
        raise BadRequestError("URL must have a valid domain")

    dangerous_patterns = ['<script', 'javascript:', 'data:', 'vbscript:']
    url_lower = url.lower()
    for pattern in dangerous_patterns:
        if pattern in url_lower:
            raise BadRequestError(f"URL contains dangerous pattern: {pattern}")

    return url


def is_playlist_url(url: str) -> bool:
    return '.m3u8' in url.lower()


def is_playlist_content_type(content_type: Optional[str]) -> bool:
    if not content_type:
        return False
    return content_type.split(';')[0].strip().lower() in HLS_CONTENT_TYPES


class ProxyFetcher:
    def __init__(
        self,
        cache: TTLCache,
        stats: Optional[ServiceStats] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ):
        self.cache = cache
        self.stats = stats or ServiceStats()
        self.timeout = timeout or settings.UPSTREAM_TIMEOUT
        self.headers = headers or {
            'User-Agent': settings.UPSTREAM_USER_AGENT,
            'Referer': settings.UPSTREAM_REFERER,
        }
        self._http_client = http_client
        self._inflight = SingleFlight("proxy")

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=10,
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=100,
                    keepalive_expiry=30.0
                )
            )
        return self._http_client

    async def start(self):
        self._client()
        logger.info("Proxy fetcher started")

    async def stop(self):
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        logger.info("Proxy fetcher stopped")

    async def fetch(self, target_url: Optional[str], proxy_origin: str) -> ProxiedResource:
        """Return the (possibly rewritten) upstream resource for target_url."""
        target_url = validate_target_url(target_url)

        cached = self.cache.get(target_url)
        if cached is not None:
            self.stats.record_cache_hit()
            logger.info(f"Proxy cache HIT: {target_url}")
            return ProxiedResource(cached.body, cached.content_type, cached=True)

        self.stats.record_cache_miss()
        return await self._inflight.do(
            target_url, lambda: self._fetch_upstream(target_url, proxy_origin))

    async def _fetch_upstream(self, target_url: str, proxy_origin: str) -> ProxiedResource:
        logger.debug(f"Fetching upstream: {target_url}")
        try:
            response = await self._client().get(
                target_url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(
                f"Upstream timed out after {self.timeout}s: {target_url}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise UpstreamError(
                f"Upstream returned HTTP {status} for {target_url}", status_code=status) from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"Upstream request failed: {e}") from e

        upstream_type = response.headers.get('content-type')
        if is_playlist_url(target_url) or is_playlist_content_type(upstream_type):
            content = rewrite_playlist(
                response.text, str(response.url), proxy_origin)
            resource = ProxiedResource(content.encode('utf-8'), HLS_CONTENT_TYPE)
        else:
            resource = ProxiedResource(
                response.content, upstream_type or DEFAULT_CONTENT_TYPE)

        self.cache.put(target_url, resource)
        return resource
