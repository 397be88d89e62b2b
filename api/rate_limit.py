"""
Fixed-window, per-client request limiting.
"""

from __future__ import annotations

import math
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from orchestrate.presenter import envelope


class FixedWindowLimiter:
    """Counts hits per key inside fixed windows of ``window_seconds``."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests < 1 or window_seconds <= 0:
            raise ValueError("max_requests and window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, tuple[float, int]] = {}

    def _prune(self, now: float) -> None:
        expired = [k for k, (start, _) in self._windows.items() if now - start >= self.window_seconds]
        for key in expired:
            del self._windows[key]

    def hit(self, key: str) -> tuple[bool, int, float]:
        """
        Register one request for ``key``.

        Returns (allowed, remaining, seconds until the window resets).
        """
        now = self._clock()
        start, count = self._windows.get(key, (now, 0))
        if now - start >= self.window_seconds:
            start, count = now, 0
        if len(self._windows) > 10000:
            self._prune(now)
        count += 1
        self._windows[key] = (start, count)
        reset_in = max(0.0, self.window_seconds - (now - start))
        remaining = max(0, self.max_requests - count)
        return count <= self.max_requests, remaining, reset_in


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        key = request.client.host if request.client else "anonymous"
        allowed, remaining, reset_in = self.limiter.hit(key)
        headers = {
            "RateLimit-Limit": str(self.limiter.max_requests),
            "RateLimit-Remaining": str(remaining),
            "RateLimit-Reset": str(math.ceil(reset_in)),
        }
        if not allowed:
            return JSONResponse(
                envelope(None, "Too many requests, please try again later.", error=True),
                status_code=429,
                headers=headers,
            )
        response = await call_next(request)
        response.headers.update(headers)
        return response
