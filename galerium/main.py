import gc
import platform
import resource
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from .config import DEFAULT_JWT_SECRET, VERSION, Settings
from .db import Database
from .errors import install_error_handlers
from .gateway import MercadoPagoGateway, PaymentGateway
from .logging import configure_logging, get_logger
from .middleware import RateLimitMiddleware, RequestIdMiddleware
from .ratelimit import RateLimiter, build_rate_limiter
from .security import JWTTokenSigner, PasslibPasswordHasher, PasswordHasher, TokenSigner
from . import assets, auth, billing

logger = get_logger()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _max_rss_mb() -> float:
    rss = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # kilobytes on Linux, bytes on macOS
    if sys.platform == "darwin":
        rss = rss / 1024
    return round(rss / 1024, 2)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    app.state.started_at = time.monotonic()
    app.state.database.init()
    logger.info(
        "server.start",
        extra={
            "env": settings.env,
            "port": settings.port,
            "mercado_pago": "configured" if app.state.gateway else "not configured",
        },
    )
    try:
        yield
    finally:
        logger.info("server.stop")
        app.state.database.dispose()


def create_app(
    settings: Optional[Settings] = None,
    *,
    database: Optional[Database] = None,
    gateway: Optional[PaymentGateway] = None,
    hasher: Optional[PasswordHasher] = None,
    signer: Optional[TokenSigner] = None,
    rate_limiter: Optional[RateLimiter] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.env)
    if settings.is_production and settings.jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("config.default_jwt_secret")

    if gateway is None and settings.gateway_configured:
        gateway = MercadoPagoGateway(settings.mp_access_token)
    if rate_limiter is None:
        rate_limiter = build_rate_limiter(settings)

    app = FastAPI(title="Galerium API", version=VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database or Database(settings.database_url)
    app.state.gateway = gateway
    app.state.hasher = hasher or PasslibPasswordHasher()
    app.state.signer = signer or JWTTokenSigner(settings.jwt_secret, settings.jwt_expires_in)
    app.state.rate_limiter = rate_limiter
    app.state.started_at = time.monotonic()

    install_error_handlers(app)

    # last added runs first: request id -> cors -> rate limit -> gzip
    if settings.is_production:
        app.add_middleware(GZipMiddleware, minimum_size=1024, compresslevel=6)
    if rate_limiter is not None:
        app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIdMiddleware)

    @app.get("/")
    def root():
        return {"message": "Galerium API running", "version": VERSION, "timestamp": _now_iso()}

    @app.get("/health")
    def health(request: Request):
        state = request.app.state
        body = {
            "message": "OK",
            "uptime": round(time.monotonic() - state.started_at, 3),
            "timestamp": _now_iso(),
            "environment": settings.env,
            "version": VERSION,
            "port": settings.port,
            "memory": {"max_rss_mb": _max_rss_mb(), "gc_counts": list(gc.get_count())},
            "mercado_pago": "Configured" if state.gateway else "Not configured",
        }
        try:
            state.database.ping()
        except Exception as e:
            logger.error("health.database_unreachable", extra={"error_message": str(e)})
            body.update(message="ERROR", database="Disconnected", error=str(e))
            return JSONResponse(status_code=503, content=body)
        body["database"] = "Connected"
        return body

    @app.get("/metrics")
    def metrics(request: Request):
        usage = resource.getrusage(resource.RUSAGE_SELF)
        return {
            "timestamp": _now_iso(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "memory": {"max_rss_mb": _max_rss_mb(), "gc_counts": list(gc.get_count())},
            "cpu": {"user_seconds": usage.ru_utime, "system_seconds": usage.ru_stime},
            "python_version": platform.python_version(),
            "platform": sys.platform,
            "arch": platform.machine(),
        }

    app.include_router(auth.router)
    app.include_router(billing.router)
    app.include_router(assets.router)
    return app


def run() -> None:
    settings = Settings.from_env()
    uvicorn.run(
        create_app(settings),
        host="0.0.0.0",
        port=settings.port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
    )


if __name__ == "__main__":
    run()
