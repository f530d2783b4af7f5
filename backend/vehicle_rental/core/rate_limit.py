"""
Per-client request limits

A sliding-window counter keyed by client address. Counters live in
process memory, so each worker enforces its own limit.
"""
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, Optional

from fastapi import HTTPException, Request, status
from vehicle_rental.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimit:
    max_requests: int
    window_seconds: int


class InMemoryRateLimiter:
    def __init__(self, *, limit: RateLimit):
        self.limit = limit
        self._events: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, key: str, *, now: Optional[float] = None) -> bool:
        timestamp = now if now is not None else time.monotonic()
        window_start = timestamp - self.limit.window_seconds
        with self._lock:
            events = self._events[key]
            while events and events[0] <= window_start:
                events.popleft()

            if len(events) >= self.limit.max_requests:
                return False

            events.append(timestamp)
            return True

    def reset(self):
        with self._lock:
            self._events.clear()


api_limiter = InMemoryRateLimiter(
    limit=RateLimit(settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
)
auth_limiter = InMemoryRateLimiter(
    limit=RateLimit(settings.AUTH_RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS)
)


def _client_key(request: Request, scope: str) -> str:
    host = request.client.host if request.client else "unknown"
    return f"{host}:{scope}"


def _enforce(limiter: InMemoryRateLimiter, request: Request, scope: str, message: str):
    if not settings.RATE_LIMIT_ENABLED:
        return
    key = _client_key(request, scope)
    if not limiter.allow(key):
        logger.warning("Rate limit exceeded for %s", key)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=message,
            headers={"Retry-After": str(limiter.limit.window_seconds)},
        )


def limit_api_requests(request: Request):
    _enforce(api_limiter, request, "api", "Too many requests from this IP, please try again later.")


def limit_auth_requests(request: Request):
    _enforce(auth_limiter, request, "auth", "Too many authentication attempts, please try again later.")
