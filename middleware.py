import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, Tuple

from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import Settings

logger = logging.getLogger("transport_entries.requests")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and latency of every request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "-"
        level = logging.WARNING if response.status_code >= 400 else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms client={client}",
        )
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window rate limiting per client IP.

    Paths under the auth prefix get their own, stricter budget. Counters live
    in this instance, so limits are per process.
    """

    def __init__(
        self,
        app,
        window_seconds: int,
        max_requests: int,
        auth_max_requests: int,
        auth_prefix: str = "/api/auth",
        exempt_paths: Tuple[str, ...] = ("/health",),
    ):
        super().__init__(app)
        self.window = timedelta(seconds=window_seconds)
        self.max_requests = max_requests
        self.auth_max_requests = auth_max_requests
        self.auth_prefix = auth_prefix
        self.exempt_paths = exempt_paths
        self.store: Dict[str, Tuple[int, datetime]] = {}
        self.last_sweep = datetime.now()

    def evict_expired(self, now: datetime) -> None:
        """Drop counters whose window has closed; sweeps at most once per window."""
        if now - self.last_sweep <= self.window:
            return
        expired = [key for key, (_, start) in self.store.items() if now - start > self.window]
        for key in expired:
            del self.store[key]
        self.last_sweep = now

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        if path in self.exempt_paths:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        if path.startswith(self.auth_prefix):
            bucket, rate_limit = "auth", self.auth_max_requests
        else:
            bucket, rate_limit = "general", self.max_requests
        key = f"{client_ip}:{bucket}"

        current_time = datetime.now()
        self.evict_expired(current_time)
        count, window_start = self.store.get(key, (0, current_time))
        if current_time - window_start > self.window:
            count, window_start = 0, current_time

        if count >= rate_limit:
            reset_at = window_start + self.window
            logger.warning(f"Rate limit exceeded for {key}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "success": False,
                    "error": "Too many requests, please try again later",
                },
                headers={
                    "X-RateLimit-Limit": str(rate_limit),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Reset": str(int(reset_at.timestamp())),
                    "Retry-After": str(max(0, int((reset_at - current_time).total_seconds()))),
                },
            )

        count += 1
        self.store[key] = (count, window_start)
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rate_limit)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rate_limit - count))
        return response


def add_middleware(app: FastAPI, settings: Settings) -> None:
    """Add all middleware to the FastAPI application."""
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(
            RateLimitMiddleware,
            window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
            max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
            auth_max_requests=settings.AUTH_RATE_LIMIT_MAX_REQUESTS,
            auth_prefix=f"{settings.API_PREFIX}/auth",
        )
    # added last so it wraps the limiter and logs 429s too
    app.add_middleware(RequestLoggingMiddleware)
