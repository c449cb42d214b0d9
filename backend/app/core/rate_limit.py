"""
Fixed-window, in-process rate limiting.

Each named limiter keeps a counter per caller key (``user:<sub>`` when a
valid bearer token is present, else ``ip:<address>``).  A window opens on
the first hit and closes ``window_seconds`` later; hits past ``max_requests``
inside an open window raise RateLimitError.

Usage as a route dependency::

    @router.get("/search", dependencies=[Depends(rate_limiters.search)])
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from threading import Lock

from fastapi import Request, Response

from app.core.config import settings
from app.core.errors import RateLimitError
from app.core.logging import get_logger
from app.core.security import decode_access_token

logger = get_logger(__name__)


@dataclass
class _Window:
    count: int
    reset_at: float


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int = 0


@dataclass(eq=False)
class FixedWindowRateLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``."""

    name: str
    max_requests: int
    window_seconds: int
    message: str = "Too many requests, please try again later"
    _store: dict[str, _Window] = field(default_factory=dict, repr=False)
    _lock: Lock = field(default_factory=Lock, repr=False)

    def hit(self, key: str, now: float | None = None) -> RateLimitResult:
        now = time.time() if now is None else now
        with self._lock:
            self._prune(now)
            window = self._store.get(key)
            if window is None or window.reset_at <= now:
                window = _Window(count=0, reset_at=now + self.window_seconds)
                self._store[key] = window

            if window.count >= self.max_requests:
                return RateLimitResult(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=window.reset_at,
                    retry_after=max(1, math.ceil(window.reset_at - now)),
                )

            window.count += 1
            return RateLimitResult(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - window.count,
                reset_at=window.reset_at,
            )

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def _prune(self, now: float) -> None:
        expired = [k for k, w in self._store.items() if w.reset_at <= now]
        for key in expired:
            del self._store[key]

    async def __call__(self, request: Request, response: Response) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        key = client_identifier(request)
        result = self.hit(key)
        if not result.allowed:
            logger.warning("Rate limit exceeded", limiter=self.name, key=key)
            raise RateLimitError(
                self.message,
                retry_after=result.retry_after,
                limit=result.limit,
                reset_at=math.ceil(result.reset_at),
            )

        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        response.headers["X-RateLimit-Reset"] = str(math.ceil(result.reset_at))


def client_identifier(request: Request) -> str:
    """Key a request by authenticated subject, falling back to client IP."""
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        payload = decode_access_token(auth_header[7:])
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    ip = request.client.host if request.client else "unknown"
    return f"ip:{ip}"


class RateLimiters:
    """Named limiters shared across routers."""

    def __init__(self) -> None:
        self.general = FixedWindowRateLimiter(
            "general", 100, 60, "Too many requests, please slow down"
        )
        self.search = FixedWindowRateLimiter(
            "search", 30, 60, "Too many search requests, please wait before searching again"
        )
        self.modifications = FixedWindowRateLimiter(
            "modifications", 20, 60, "Too many modifications, please slow down"
        )
        self.automation = FixedWindowRateLimiter(
            "automation", 5, 600, "Too many automation runs, please wait before trying again"
        )
        self.auth = FixedWindowRateLimiter(
            "auth", 10, 900, "Too many login attempts, please try again later"
        )

    def all(self) -> list[FixedWindowRateLimiter]:
        return [self.general, self.search, self.modifications, self.automation, self.auth]

    def reset_all(self) -> None:
        for limiter in self.all():
            limiter.reset()


rate_limiters = RateLimiters()
