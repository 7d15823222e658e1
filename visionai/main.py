"""
Main Application - FastAPI application setup.
"""

import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from prometheus_client import generate_latest
from structlog import get_logger

from visionai.api.auth_routes import router as auth_router
from visionai.api.routes import router as payments_router
from visionai.api.status_routes import router as status_router
from visionai.config import settings
from visionai.db.session import close_engine
from visionai.observability import log_context, metrics, setup_logging, setup_tracing
from visionai.services.rate_limiter import SlidingWindowRateLimiter

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


def build_rate_limiters() -> tuple[SlidingWindowRateLimiter, SlidingWindowRateLimiter]:
    """Login and register limiters from settings."""
    login = SlidingWindowRateLimiter(
        "login",
        max_attempts=settings.login_max_attempts,
        window_seconds=settings.login_window_seconds,
        cleanup_after_seconds=settings.rate_limit_cleanup_after_seconds,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )
    register = SlidingWindowRateLimiter(
        "register",
        max_attempts=settings.register_max_attempts,
        window_seconds=settings.register_window_seconds,
        cleanup_after_seconds=settings.rate_limit_cleanup_after_seconds,
        sweep_interval_seconds=settings.rate_limit_sweep_interval_seconds,
    )
    return login, register


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Starts the rate limiter sweeps and closes the database on shutdown.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        stripe_configured=settings.stripe_configured,
    )

    login_limiter, register_limiter = build_rate_limiters()
    app.state.login_rate_limiter = login_limiter
    app.state.register_rate_limiter = register_limiter
    login_limiter.start()
    register_limiter.start()

    yield

    logger.info("application_shutting_down")
    await login_limiter.stop()
    await register_limiter.stop()
    await close_engine()
    logger.info("database_engine_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Log validation errors and return them without non-serializable context."""
    sanitized_errors = []
    for error in exc.errors():
        sanitized = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
        }
        if "ctx" in error:
            sanitized["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        sanitized_errors.append(sanitized)

    # Request bodies carry passwords, so only locations and messages are logged
    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    return JSONResponse(status_code=422, content={"detail": sanitized_errors})


setup_tracing(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def logging_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Log all HTTP requests with timing."""
    start_time = time.time()
    request_id = request.headers.get("X-Request-ID", "unknown")
    endpoint = request.url.path
    method = request.method

    metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).inc()

    try:
        with log_context(request_id=request_id):
            response = await call_next(request)
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, response.status_code, duration)

        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=duration,
            request_id=request_id,
        )
        return response
    except Exception as e:
        duration = time.time() - start_time
        metrics.record_http_request(endpoint, method, 500, duration)
        metrics.record_error(type(e).__name__, "http_request")

        logger.error(
            "request_failed",
            method=method,
            path=endpoint,
            error=str(e),
            duration_seconds=duration,
            request_id=request_id,
            exc_info=True,
        )
        raise
    finally:
        metrics.http_requests_in_progress.labels(endpoint=endpoint, method=method).dec()


app.include_router(auth_router)
app.include_router(payments_router)
app.include_router(status_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.api_title,
        "version": settings.api_version,
        "status": "running",
    }


@app.get("/metrics")
async def metrics_endpoint() -> Response:
    """Prometheus metrics in text format."""
    return PlainTextResponse(generate_latest())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "visionai.main:app",
        host=settings.api_host,
        port=settings.api_port,
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
        log_level=settings.log_level.lower(),
    )
