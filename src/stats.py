"""
Process-wide counters for the dashboard endpoint.
All mutation happens on the event loop without awaiting, so no lock is needed.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, List, Set

from config import settings

logger = logging.getLogger(__name__)


@dataclass
class ErrorRecord:
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class ServiceStats:
    total_requests: int = 0
    api_hits: int = 0
    proxy_hits: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    error_count: int = 0
    unique_ips: Set[str] = field(default_factory=set)
    errors: Deque[ErrorRecord] = field(
        default_factory=lambda: deque(maxlen=settings.ERROR_LOG_SIZE))
    # Most recent first
    recent_codes: Deque[str] = field(
        default_factory=lambda: deque(maxlen=settings.RECENT_CODES_SIZE))
    uptime_start: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record_request(self, path: str, ip_address: str):
        self.total_requests += 1
        self.unique_ips.add(ip_address)
        if path.startswith("/api/getm3u8"):
            self.api_hits += 1
        elif path.startswith("/proxy"):
            self.proxy_hits += 1

    def record_cache_hit(self):
        self.cache_hits += 1

    def record_cache_miss(self):
        self.cache_misses += 1

    def record_error(self, message: str):
        self.error_count += 1
        self.errors.append(ErrorRecord(message=message))

    def record_resolved(self, code: str):
        self.recent_codes.appendleft(code)

    def recent_errors(self, limit: int = 10) -> List[Dict[str, str]]:
        records = list(self.errors)[-limit:]
        return [
            {"message": r.message, "timestamp": r.timestamp.isoformat()}
            for r in records
        ]

    @property
    def uptime_seconds(self) -> int:
        return int((datetime.now(timezone.utc) - self.uptime_start).total_seconds())
