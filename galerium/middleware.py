import time
from uuid import uuid4

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .errors import RateLimitError, app_error_handler
from .logging import get_logger, request_id_ctx_var
from .ratelimit import RateLimiter

logger = get_logger("http")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a request id to each request and log its completion."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        token = request_id_ctx_var.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000
            response.headers[self.header_name] = rid
            logger.info(
                "request.complete",
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "latency_ms": round(duration_ms, 2),
                },
            )
            return response
        finally:
            request_id_ctx_var.reset(token)


def client_address(request: Request) -> str:
    # behind a trusted proxy uvicorn has already rewritten the peer from X-Forwarded-For
    return request.client.host if request.client else "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window throttling per client address."""

    def __init__(self, app, *, limiter: RateLimiter):
        super().__init__(app)
        self.limiter = limiter

    async def dispatch(self, request: Request, call_next):
        decision = await run_in_threadpool(self.limiter.hit, client_address(request))
        if not decision.allowed:
            response = await app_error_handler(
                request, RateLimitError("Too many requests. Try again in a few minutes.")
            )
            response.headers["Retry-After"] = str(decision.reset_in)
        else:
            response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(decision.limit)
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        return response
