from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional

# Application version
VERSION = "1.0.0"


class Settings(BaseSettings):
    """
    Application configuration loaded from environment variables.
    Utilizes pydantic-settings for robust validation and type-casting.
    """

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    # Public URL used as the proxy origin when rewriting playlists
    PUBLIC_URL: Optional[str] = None
    # Rewritten URLs use https unless PUBLIC_URL says otherwise
    FORCE_HTTPS: bool = True
    LOG_LEVEL: str = "info"
    RELOAD: bool = False
    ROOT_PATH: str = ""
    DOCS_URL: str = "/docs"
    REDOC_URL: str = "/redoc"
    OPENAPI_URL: str = "/openapi.json"

    # API Authentication (admin endpoints only)
    API_TOKEN: Optional[str] = None

    # Request filtering
    CORS_ALLOW_ORIGINS: List[str] = ["*"]
    BLOCK_BOTS: bool = True
    BLOCKED_USER_AGENTS: List[str] = [
        "curl", "wget", "python", "bot", "spider", "scrapy"]

    # Cache configuration
    CACHE_TTL: int = 3 * 60 * 60  # seconds (3 hours)
    RESOLUTION_CACHE_SIZE: int = 100
    PROXY_CACHE_SIZE: int = 200
    RECENT_CODES_SIZE: int = 20
    ERROR_LOG_SIZE: int = 100

    # Origin site
    ORIGIN_PAGE_URL_TEMPLATE: str = "https://26efp.com/bkg/{code}"
    UPSTREAM_REFERER: str = "https://26efp.com/"
    UPSTREAM_USER_AGENT: str = "Mozilla/5.0"
    UPSTREAM_TIMEOUT: float = 30.0

    # Headless browser
    BROWSER_EXECUTABLE_PATH: Optional[str] = None
    BROWSER_HEADLESS: bool = True
    # Close the browser after this many idle seconds
    BROWSER_IDLE_TIMEOUT: float = 300.0
    BROWSER_LAUNCH_TIMEOUT: float = 60.0
    NAVIGATION_TIMEOUT: float = 30.0
    SEGMENT_WAIT_TIMEOUT: float = 30.0

    # Capture recipe
    SEGMENT_URL_PATTERN: str = r"\.ts(?:$|[?#])"
    MANIFEST_FILENAME: str = "master.m3u8"
    PLAY_BUTTON_SELECTOR: str = ".jw-icon-display"

    # Model configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="",  # No prefix, read directly from .env
        extra="ignore"  # Ignore extra environment variables from container
    )


# Global settings instance
settings = Settings()
