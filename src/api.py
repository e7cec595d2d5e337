from fastapi import FastAPI, HTTPException, Query, Response, Request, Depends, Header
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from contextlib import asynccontextmanager
import logging
from typing import Optional

from browser_manager import BrowserSessionManager
from cache import TTLCache
from config import settings, VERSION
from errors import BadRequestError, StreamNotFoundError
from models import (
    BrowserStatus,
    CacheSizes,
    ClearCacheResponse,
    ErrorResponse,
    HealthCheck,
    ResolveResponse,
    StatsResponse,
)
from proxy_fetcher import ProxyFetcher
from stats import ServiceStats
from stream_resolver import StreamResolver

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def detect_https_from_headers(request: Request) -> bool:
    """
    HTTPS detection from reverse proxy headers.

    Covers X-Forwarded-Proto (NGINX, Caddy, Traefik), X-Forwarded-Scheme
    (NGINX Proxy Manager), X-Forwarded-Ssl (Cloudflare, some load balancers),
    Front-End-Https (IIS, Azure) and the RFC 7239 Forwarded header.
    """
    forwarded_proto = request.headers.get("x-forwarded-proto")
    if forwarded_proto and forwarded_proto.lower() == "https":
        return True

    forwarded_scheme = request.headers.get("x-forwarded-scheme")
    if forwarded_scheme and forwarded_scheme.lower() == "https":
        return True

    if request.headers.get("x-forwarded-ssl") == "on":
        return True

    if request.headers.get("front-end-https") == "on":
        return True

    forwarded = request.headers.get("forwarded")
    if forwarded and "proto=https" in forwarded.lower():
        return True

    if request.headers.get("x-forwarded-port") == "443":
        return True

    return False


def get_client_info(request: Request):
    """Extract client information from request"""
    # X-Forwarded-For can contain multiple IPs: "client, proxy1, proxy2"
    # We want the first one (the original client IP)
    ip_address = "unknown"
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    elif request.client:
        ip_address = request.client.host

    return {
        "user_agent": request.headers.get("user-agent") or "unknown",
        "ip_address": ip_address
    }


def get_proxy_origin(request: Request) -> str:
    """Public origin that rewritten playlist URIs point back to."""
    root_path = settings.ROOT_PATH or ""

    public_url = settings.PUBLIC_URL
    if public_url:
        # If PUBLIC_URL includes a scheme, respect it. Otherwise assume https.
        base = public_url if public_url.startswith(('http://', 'https://')) else f"https://{public_url}"
        base = base.rstrip('/')
        # Avoid duplicating ROOT_PATH if PUBLIC_URL already carries it
        if root_path and base.endswith(root_path):
            return base
        return f"{base}{root_path}"

    host = request.headers.get("host") or request.url.netloc
    if settings.FORCE_HTTPS or detect_https_from_headers(request):
        scheme = "https"
    else:
        scheme = request.url.scheme
    return f"{scheme}://{host}{root_path}"


# Process-wide components
service_stats = ServiceStats()
resolution_cache = TTLCache(
    settings.RESOLUTION_CACHE_SIZE, settings.CACHE_TTL, name="resolution_cache")
proxy_cache = TTLCache(
    settings.PROXY_CACHE_SIZE, settings.CACHE_TTL, name="proxy_cache")
browser_manager = BrowserSessionManager()
stream_resolver = StreamResolver(
    resolution_cache, browser_manager, stats=service_stats)
proxy_fetcher = ProxyFetcher(proxy_cache, stats=service_stats)


def get_stream_resolver() -> StreamResolver:
    return stream_resolver


def get_proxy_fetcher() -> ProxyFetcher:
    return proxy_fetcher


def get_browser_manager() -> BrowserSessionManager:
    return browser_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("m3u8-resolver starting up...")
    await proxy_fetcher.start()

    yield

    logger.info("m3u8-resolver shutting down...")
    await browser_manager.shutdown()
    await proxy_fetcher.stop()


app = FastAPI(
    title="m3u8-resolver",
    version=VERSION,
    description="Resolves content codes into HLS manifests and proxies them with URI rewriting",
    lifespan=lifespan,
    root_path=settings.ROOT_PATH,
    docs_url=settings.DOCS_URL,
    redoc_url=settings.REDOC_URL,
    openapi_url=settings.OPENAPI_URL,
)


@app.middleware("http")
async def count_requests(request: Request, call_next):
    path = request.url.path
    if settings.ROOT_PATH and path.startswith(settings.ROOT_PATH):
        path = path[len(settings.ROOT_PATH):]
    service_stats.record_request(path, get_client_info(request)["ip_address"])
    return await call_next(request)


@app.middleware("http")
async def block_bots(request: Request, call_next):
    """Refuse known crawler and scripting user agents."""
    if settings.BLOCK_BOTS:
        user_agent = (request.headers.get("user-agent") or "").lower()
        if any(blocked in user_agent for blocked in settings.BLOCKED_USER_AGENTS):
            logger.debug(f"Blocked user agent: {user_agent}")
            return PlainTextResponse("Access denied.", status_code=403)
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "SAMEORIGIN"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    # Segments and playlists are embedded by players on other origins
    response.headers["Cross-Origin-Resource-Policy"] = "cross-origin"

    for header in ("server", "x-powered-by"):
        if header in response.headers:
            del response.headers[header]

    return response


app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "HEAD", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["*"],
)


async def verify_token(
    x_api_token: Optional[str] = Header(None, alias="X-API-Token"),
    api_token: Optional[str] = Query(
        None, description="API token (alternative to X-API-Token header)")
):
    """
    Verify API token if API_TOKEN is configured.
    Token can be provided via:
    - X-API-Token header (recommended)
    - api_token query parameter (for browser access or when headers are difficult)

    If API_TOKEN is not set in environment, authentication is disabled.
    """
    if not settings.API_TOKEN:
        return True

    provided_token = x_api_token or api_token

    if not provided_token:
        raise HTTPException(
            status_code=401,
            detail="API token required. Provide token via X-API-Token header or api_token query parameter.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if provided_token != settings.API_TOKEN:
        raise HTTPException(
            status_code=403,
            detail="Invalid API token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return True


@app.get("/")
async def root():
    return {
        "status": "running",
        "message": "m3u8-resolver is running. Use /api/getm3u8/{code} or /proxy?m3u8=...",
        "version": VERSION,
        "uptime": service_stats.uptime_seconds,
    }


@app.get("/api/getm3u8/{code}", response_model=ResolveResponse)
async def get_m3u8(code: str, resolver: StreamResolver = Depends(get_stream_resolver)):
    """Resolve a content code into its HLS manifest URL"""
    try:
        manifest_url = await resolver.resolve(code)
        return ResolveResponse(url=manifest_url)
    except StreamNotFoundError as e:
        logger.warning(f"No segment captured for {code}: {e}")
        return JSONResponse(
            status_code=404, content=ErrorResponse(error=str(e)).model_dump())
    except Exception as e:
        logger.error(f"Error resolving {code}: {e}")
        service_stats.record_error(str(e))
        return JSONResponse(
            status_code=500, content=ErrorResponse(error=str(e)).model_dump())


@app.get("/proxy")
async def proxy(
    request: Request,
    m3u8: Optional[str] = Query(None, description="The upstream URL to proxy"),
    fetcher: ProxyFetcher = Depends(get_proxy_fetcher),
):
    """Proxy a playlist or segment, rewriting playlists to route through here"""
    if not m3u8:
        return PlainTextResponse("Missing m3u8 URL.", status_code=400)

    try:
        resource = await fetcher.fetch(m3u8, get_proxy_origin(request))
    except BadRequestError as e:
        return PlainTextResponse(str(e), status_code=400)
    except Exception as e:
        logger.error(f"Proxy error for {m3u8}: {e}")
        service_stats.record_error(str(e))
        return PlainTextResponse(
            f"Error fetching upstream content. {e}", status_code=502)

    return Response(
        content=resource.body,
        media_type=resource.content_type,
        headers={
            "Access-Control-Allow-Origin": "*",
            "X-Cache": "HIT" if resource.cached else "MISS",
        },
    )


@app.get("/stats", response_model=StatsResponse, dependencies=[Depends(verify_token)])
async def get_stats(
    resolver: StreamResolver = Depends(get_stream_resolver),
    fetcher: ProxyFetcher = Depends(get_proxy_fetcher),
    browser: BrowserSessionManager = Depends(get_browser_manager),
):
    """Counters, recent errors and cache occupancy for the dashboard"""
    return StatsResponse(
        total_requests=service_stats.total_requests,
        api_hits=service_stats.api_hits,
        proxy_hits=service_stats.proxy_hits,
        cache_hits=service_stats.cache_hits,
        cache_misses=service_stats.cache_misses,
        unique_ips=len(service_stats.unique_ips),
        errors=service_stats.recent_errors(10),
        error_count=service_stats.error_count,
        uptime=service_stats.uptime_seconds,
        recent_codes=list(service_stats.recent_codes),
        cache_sizes=CacheSizes(
            resolution_cache=len(resolver.cache),
            proxy_cache=len(fetcher.cache),
        ),
        browser_running=browser.is_running,
        in_flight={
            "resolutions": resolver.in_flight,
            "proxy_fetches": fetcher.in_flight,
        },
    )


@app.api_route("/clear-cache", methods=["GET", "POST"],
               response_model=ClearCacheResponse, dependencies=[Depends(verify_token)])
async def clear_cache(
    resolver: StreamResolver = Depends(get_stream_resolver),
    fetcher: ProxyFetcher = Depends(get_proxy_fetcher),
):
    """Drop all cached manifest URLs and proxied content"""
    resolver.cache.clear()
    fetcher.cache.clear()
    logger.info("Resolution and proxy caches cleared")
    return ClearCacheResponse(
        message="Resolution and proxy caches cleared successfully.")


@app.get("/status", response_model=BrowserStatus, dependencies=[Depends(verify_token)])
async def get_status(browser: BrowserSessionManager = Depends(get_browser_manager)):
    """Whether the headless browser is currently running"""
    return BrowserStatus(
        browser_running=browser.is_running,
        active_leases=browser.active_leases,
        launch_count=browser.launch_count,
    )


@app.get("/health", response_model=HealthCheck, dependencies=[Depends(verify_token)])
async def health_check():
    """Health check endpoint"""
    return HealthCheck(
        status="healthy",
        version=VERSION,
        uptime_seconds=service_stats.uptime_seconds,
        public_url=settings.PUBLIC_URL,
    )
