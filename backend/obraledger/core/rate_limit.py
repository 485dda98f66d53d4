"""
Rate Limiting Middleware

Sliding-window limits per client, kept in process memory. Reads are free;
logins, check sweeps and every endpoint that moves money are limited.
"""
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict, deque
from typing import Deque, Dict, Optional, Tuple
import threading
import time
import logging

from obraledger.core.config import settings

logger = logging.getLogger(__name__)

UNLIMITED_METHODS = ("GET", "HEAD", "OPTIONS")
AUTH_PREFIX = "/api/v1/auth"


def default_limits() -> Dict[str, Tuple[int, int]]:
    """Path prefix -> (requests, window seconds); more specific prefixes first"""
    window = settings.RATE_LIMIT_WINDOW_SECONDS
    return {
        "/api/v1/auth/login": (settings.RATE_LIMIT_LOGIN, window),
        "/api/v1/checks/process-due": (settings.RATE_LIMIT_CHECK_SWEEP, window),
        "/api/v1/checks": (settings.RATE_LIMIT_MONEY_WRITES, window),
        "/api/v1/treasury/transactions": (settings.RATE_LIMIT_MONEY_WRITES, window),
        "/api/v1/accounting/journal-entries": (settings.RATE_LIMIT_JOURNAL_WRITES, window),
        "default": (settings.RATE_LIMIT_DEFAULT, window),
    }


class RateLimiter:
    def __init__(self, limits: Optional[Dict[str, Tuple[int, int]]] = None, clock=time.monotonic):
        self.limits = limits or default_limits()
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()
        self._max_window = max(window for _, window in self.limits.values())
        self._last_sweep = clock()

    @staticmethod
    def client_id(request: Request) -> str:
        """Client address plus the token signature tail when a bearer token is sent"""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            address = forwarded.split(",")[0].strip()
        else:
            address = request.headers.get("X-Real-IP") or (request.client.host if request.client else "unknown")

        token = ""
        authorization = request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            # Every HS256 header segment is identical; the signature is not
            token = authorization[7:][-8:]
        return f"{address}:{token or 'anonymous'}"

    def get_limit(self, path: str) -> Tuple[int, int]:
        for prefix, limit in self.limits.items():
            if prefix != "default" and path.startswith(prefix):
                return limit
        return self.limits["default"]

    def is_allowed(self, request: Request) -> Tuple[bool, Optional[Dict]]:
        """
        Record the request and decide whether it may proceed.

        Returns ``(allowed, info)``; ``info`` is None for requests that are
        not limited at all.
        """
        path = request.url.path
        if request.method in UNLIMITED_METHODS and not path.startswith(AUTH_PREFIX):
            return True, None

        limit, window = self.get_limit(path)
        key = f"{path}|{self.client_id(request)}"
        now = self._clock()

        with self._lock:
            if now - self._last_sweep >= self._max_window:
                self._sweep(now)

            hits = self._hits[key]
            while hits and now - hits[0] >= window:
                hits.popleft()

            if len(hits) >= limit:
                retry_after = max(1, int(window - (now - hits[0])))
                logger.warning(f"Rate limit exceeded for {key}: {len(hits)}/{limit} in {window}s")
                return False, {"limit": limit, "remaining": 0, "reset": retry_after, "retry_after": retry_after}

            hits.append(now)
            return True, {"limit": limit, "remaining": limit - len(hits), "reset": window}

    def _sweep(self, now: float):
        """Forget clients whose newest hit has left every window"""
        stale = [key for key, hits in self._hits.items() if not hits or now - hits[-1] >= self._max_window]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    def reset(self):
        with self._lock:
            self._hits.clear()


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, rate_limiter: Optional[RateLimiter] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or RateLimiter()

    async def dispatch(self, request: Request, call_next):
        if not settings.RATE_LIMIT_ENABLED or not request.url.path.startswith("/api/"):
            return await call_next(request)

        allowed, info = self.rate_limiter.is_allowed(request)
        if not allowed:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": "Too many requests. Please try again later.",
                    "code": "RATE_LIMITED",
                    "retry_after": info["retry_after"],
                },
                headers={
                    "Retry-After": str(info["retry_after"]),
                    "X-RateLimit-Limit": str(info["limit"]),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        if info:
            response.headers["X-RateLimit-Limit"] = str(info["limit"])
            response.headers["X-RateLimit-Remaining"] = str(info["remaining"])
            response.headers["X-RateLimit-Reset"] = str(info["reset"])
        return response
