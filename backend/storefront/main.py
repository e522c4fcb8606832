"""
FastAPI application for the storefront checkout service.

``create_app`` wires CORS, request correlation logging, slowapi rate limiting,
the error envelopes and the v1 routers. The lifespan owns the shared HTTP
client used for remote pincode lookups and the optional Redis cache, and
disposes of the database engine on shutdown.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from storefront.api.deps import limiter
from storefront.api.v1 import api_router
from storefront.cache.redis_client import (
    close_redis_client,
    get_redis_client,
    peek_redis_client,
)
from storefront.core.config import Settings, get_settings
from storefront.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from storefront.database.connection import (
    check_database_health,
    close_database_connections,
)

configure_logging()
logger = get_logger(__name__)


def error_body(code: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"error": code, "message": message, **extra, "request_id": get_request_id()}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    logger.info(
        "Application starting",
        environment=settings.environment,
        version=settings.app_version,
    )

    app.state.http_client = httpx.AsyncClient(
        timeout=settings.pincode_lookup_timeout_seconds,
    )
    if settings.pincode_cache_enabled:
        try:
            await get_redis_client()
        except RedisError as e:
            logger.warning("Redis unavailable, pincode cache disabled", error=str(e))

    yield

    with log_performance(logger, "application_shutdown"):
        await app.state.http_client.aclose()
        await close_redis_client()
        await close_database_connections()


async def correlate_requests(request: Request, call_next):
    """Bind a request id, time the request and echo the id back."""
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    try:
        with log_performance(
            logger,
            "http_request",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
    finally:
        clear_context()


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=details,
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_body("VALIDATION_ERROR", "Request validation failed", details=details),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the failure and answer with a generic 500."""
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
    )


def add_health_routes(app: FastAPI, settings: Settings) -> None:
    @app.get("/health", tags=["Health"], summary="Liveness probe")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "service": settings.app_name,
            "version": settings.app_version,
        }

    @app.get("/ready", tags=["Health"], summary="Readiness probe")
    async def readiness_check():
        """
        503 while the database is unreachable.

        The pincode cache is optional and only reported.
        """
        database_ok = await check_database_health()
        redis = peek_redis_client()
        cache = "disabled"
        if redis is not None:
            cache = "healthy" if await redis.health_check() else "degraded"

        body = {
            "status": "ready" if database_ok else "not_ready",
            "database": "healthy" if database_ok else "unhealthy",
            "pincode_cache": cache,
        }
        if not database_ok:
            logger.warning("Readiness check failed", **body)
            return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)
        return body


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Storefront checkout backend API",
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.middleware("http")(correlate_requests)

    add_health_routes(app, settings)
    app.include_router(api_router, prefix=settings.api_v1_prefix)
    return app


app = create_app()
