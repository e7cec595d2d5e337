from pydantic import BaseModel, Field
from typing import List, Dict, Optional
from datetime import datetime, timezone


class ResolveResponse(BaseModel):
    success: bool = True
    url: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str


class ErrorEntry(BaseModel):
    message: str
    timestamp: str


class CacheSizes(BaseModel):
    resolution_cache: int
    proxy_cache: int


class StatsResponse(BaseModel):
    total_requests: int
    api_hits: int
    proxy_hits: int
    cache_hits: int
    cache_misses: int
    unique_ips: int
    errors: List[ErrorEntry]
    error_count: int
    uptime: int  # seconds
    recent_codes: List[str]
    cache_sizes: CacheSizes
    browser_running: bool
    in_flight: Dict[str, int] = Field(default_factory=dict)


class ClearCacheResponse(BaseModel):
    success: bool = True
    message: str


class BrowserStatus(BaseModel):
    browser_running: bool
    active_leases: int
    launch_count: int


class HealthCheck(BaseModel):
    status: str
    version: str
    uptime_seconds: int
    public_url: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
