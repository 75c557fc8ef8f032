"""Security and rate limiting middleware."""

from __future__ import annotations

import time
from collections import defaultdict
from typing import Any, Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

EXEMPT_PATHS = {"/healthz"}


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limit per client IP.

    Over-limit requests get a 429 response with a ``Retry-After`` header.
    """

    def __init__(
        self,
        app: Any,
        *,
        requests_per_minute: int = 60,
        requests_per_hour: int = 1000,
    ) -> None:
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.requests_per_hour = requests_per_hour
        self.minute_requests: dict[str, list[float]] = defaultdict(list)
        self.hour_requests: dict[str, list[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.time()
        self._prune(client_ip, now)

        if len(self.minute_requests[client_ip]) >= self.requests_per_minute:
            return self._too_many("Rate limit exceeded. Please try again later.", 60)
        if len(self.hour_requests[client_ip]) >= self.requests_per_hour:
            return self._too_many("Hourly rate limit exceeded. Please try again later.", 3600)

        self.minute_requests[client_ip].append(now)
        self.hour_requests[client_ip].append(now)
        return await call_next(request)

    @staticmethod
    def _too_many(message: str, retry_after: int) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"error": "RateLimited", "message": message, "details": {}},
            headers={"Retry-After": str(retry_after)},
        )

    def _prune(self, client_ip: str, now: float) -> None:
        self.minute_requests[client_ip] = [t for t in self.minute_requests[client_ip] if now - t < 60]
        self.hour_requests[client_ip] = [t for t in self.hour_requests[client_ip] if now - t < 3600]


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to responses."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response
