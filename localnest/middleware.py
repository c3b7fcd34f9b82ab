import json
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from .redis_client import redis_client

_UNLIMITED_PATHS = ("/docs", "/openapi.json", "/health", "/redoc")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON line per request on stdout, tagged with X-Request-Id."""

    @staticmethod
    def _log(request: Request, request_id: str, status: int, started: float):
        print(
            json.dumps(
                {
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": status,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "user_id": getattr(request.state, "user_id", None),
                    "user_type": getattr(request.state, "user_type", None),
                }
            )
        )

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or str(uuid.uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        try:
            response: Response = await call_next(request)
        except Exception:
            self._log(request, request_id, 500, started)
            raise

        response.headers["X-Request-Id"] = request_id
        self._log(request, request_id, response.status_code, started)
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_per_minute: int = 120, client=None):
        super().__init__(app)
        self.max_per_minute = max_per_minute
        self.client = client if client is not None else redis_client

    async def dispatch(self, request: Request, call_next):
        if self.client is None:
            return await call_next(request)

        if request.url.path in _UNLIMITED_PATHS or request.url.path.startswith("/docs/"):
            return await call_next(request)

        ip = request.client.host if request.client else "unknown"
        epoch_minute = int(time.time() // 60)
        key = f"rl:ip:{ip}:{epoch_minute}"

        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, 70)

        if count > self.max_per_minute:
            return JSONResponse(
                status_code=429,
                content={"detail": "Too many requests", "error": "RATE_LIMITED"},
            )

        return await call_next(request)
