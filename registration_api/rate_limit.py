from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger("registration_service.ratelimit")

TOO_MANY_REQUESTS_MESSAGE = "Too many requests, please try again later."


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the client's window ends


class FixedWindowRateLimiter:
    """Thread-safe fixed-window request counter keyed by client.

    Each client's window starts at its first request and lasts
    ``window_seconds``; within it at most ``max_requests`` are allowed.
    Expired windows are swept lazily so the table does not grow without bound.
    """

    def __init__(
        self,
        *,
        max_requests: int = 100,
        window_seconds: float = 15 * 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = int(max_requests)
        self.window_seconds = float(window_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (count, window_end)
        self._hits: Dict[str, Tuple[int, float]] = {}
        self._next_sweep = clock() + self.window_seconds

    @property
    def enabled(self) -> bool:
        return self.max_requests > 0

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            if now >= self._next_sweep:
                self._hits = {k: v for k, v in self._hits.items() if v[1] > now}
                self._next_sweep = now + self.window_seconds

            count, window_end = self._hits.get(key, (0, 0.0))
            if now >= window_end:
                count, window_end = 0, now + self.window_seconds
            count += 1
            self._hits[key] = (count, window_end)

        return RateLimitDecision(
            allowed=count <= self.max_requests,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - count),
            reset_after=max(0.0, window_end - now),
        )

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._hits.clear()
            else:
                self._hits.pop(key, None)


def client_key(request: Request, *, trust_forwarded: bool = False) -> str:
    if trust_forwarded:
        fwd = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        if fwd:
            return fwd
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def rate_limit_headers(decision: RateLimitDecision, *, window_seconds: float) -> Dict[str, str]:
    # IETF draft RateLimit-* fields; no legacy X-RateLimit-* headers.
    return {
        "RateLimit-Policy": f"{decision.limit};w={int(window_seconds)}",
        "RateLimit-Limit": str(decision.limit),
        "RateLimit-Remaining": str(decision.remaining),
        "RateLimit-Reset": str(math.ceil(decision.reset_after)),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        *,
        limiter: FixedWindowRateLimiter,
        trust_forwarded: bool = False,
        exempt_paths: Iterable[str] = (),
    ):
        super().__init__(app)
        self.limiter = limiter
        self.trust_forwarded = trust_forwarded
        self.exempt_paths = frozenset(exempt_paths)

    async def dispatch(self, request: Request, call_next):
        if not self.limiter.enabled or request.url.path in self.exempt_paths:
            return await call_next(request)

        key = client_key(request, trust_forwarded=self.trust_forwarded)
        decision = self.limiter.hit(key)
        headers = rate_limit_headers(decision, window_seconds=self.limiter.window_seconds)

        if not decision.allowed:
            logger.warning("Rate limit exceeded", extra={"client_key": key})
            headers["Retry-After"] = str(math.ceil(decision.reset_after))
            return JSONResponse({"message": TOO_MANY_REQUESTS_MESSAGE}, status_code=429, headers=headers)

        response = await call_next(request)
        for name, value in headers.items():
            response.headers[name] = value
        return response
