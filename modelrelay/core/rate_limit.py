"""Fixed-window rate limiting.

The counter table sits behind the ``RateLimitStore`` protocol so that a
shared cache can replace the in-memory store when running several workers.
"""

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from modelrelay.agent.prompts import RATE_LIMIT_MESSAGE
from modelrelay.core.security import get_client_ip

logger = logging.getLogger(__name__)


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    reset_in: int  # seconds until the window resets


class RateLimitStore(Protocol):
    """Storage for per-key fixed windows."""

    async def get(self, key: str) -> Optional[RateLimitEntry]:
        ...

    async def increment(self, key: str, window_seconds: float) -> RateLimitEntry:
        """Count one request, opening a fresh window if the old one expired."""
        ...

    async def sweep(self) -> int:
        """Drop expired windows; returns how many were removed."""
        ...


class InMemoryRateLimitStore:
    """Single-process store. Safe on one event loop without locking."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._entries: Dict[str, RateLimitEntry] = {}
        self._clock = clock

    async def get(self, key: str) -> Optional[RateLimitEntry]:
        entry = self._entries.get(key)
        if entry is None or self._clock() > entry.reset_at:
            return None
        return entry

    async def increment(self, key: str, window_seconds: float) -> RateLimitEntry:
        now = self._clock()
        entry = self._entries.get(key)
        if entry is None or now > entry.reset_at:
            entry = RateLimitEntry(count=1, reset_at=now + window_seconds)
            self._entries[key] = entry
        else:
            entry.count += 1
        return entry

    async def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.reset_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class RateLimiter:
    """Fixed window limiter: ``max_requests`` per ``window_seconds`` per key."""

    def __init__(
        self,
        store: RateLimitStore,
        max_requests: int = 20,
        window_seconds: int = 60,
        sweep_interval: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sweep_task: Optional[asyncio.Task] = None

    async def check(self, key: str) -> RateLimitDecision:
        """Record a request for ``key`` and decide whether it may proceed."""
        entry = await self.store.increment(key, self.window_seconds)
        reset_in = max(0, int(entry.reset_at - self._clock()) + 1)
        remaining = max(0, self.max_requests - entry.count)
        return RateLimitDecision(
            allowed=entry.count <= self.max_requests,
            remaining=remaining,
            reset_in=reset_in,
        )

    async def status(self, key: str) -> RateLimitDecision:
        """Inspect a key without counting a request."""
        entry = await self.store.get(key)
        if entry is None:
            return RateLimitDecision(allowed=True, remaining=self.max_requests, reset_in=0)
        return RateLimitDecision(
            allowed=entry.count < self.max_requests,
            remaining=max(0, self.max_requests - entry.count),
            reset_in=max(0, int(entry.reset_at - self._clock()) + 1),
        )

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._sweep_task is None:
            self._sweep_task = asyncio.create_task(self._sweep_loop())
            logger.info(f"Rate limit sweeper started (every {self.sweep_interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if self._sweep_task:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None
            logger.info("Rate limit sweeper stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                removed = await self.store.sweep()
                if removed:
                    logger.debug(f"Rate limit sweep removed {removed} expired windows")
            except Exception as e:
                logger.error(f"Rate limit sweep failed: {e}")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Enforce per-client limits on the model-backed endpoints."""

    # Path prefix -> rate limit category
    ENDPOINT_CATEGORIES = {
        "/api/v1/chat": "api_chat",
        "/api/v1/code": "api_code",
        "/api/v1/search": "api_search",
        "/api/v1/weather": "api_weather",
    }

    def __init__(self, app, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        category = None
        for prefix, cat in self.ENDPOINT_CATEGORIES.items():
            if path.startswith(prefix):
                category = cat
                break

        # Catalog reads and unlisted paths are not limited
        if category is None or request.method != "POST":
            return await call_next(request)

        client_ip = get_client_ip(request)
        decision = await self.limiter.check(f"{client_ip}:{category}")

        if not decision.allowed:
            logger.warning(
                f"Rate limit exceeded for {client_ip} on {category} "
                f"(retry after {decision.reset_in}s)"
            )
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "error": "rate_limit_exceeded",
                    "message": RATE_LIMIT_MESSAGE,
                    "retry_after": decision.reset_in,
                },
                headers={
                    "Retry-After": str(decision.reset_in),
                    "X-RateLimit-Limit": str(self.limiter.max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.limiter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
