"""
Main FastAPI application.

Storefront API with:
- CORS configuration
- Error handling
- Request ID tracking
- Structured logging
- Prometheus metrics
"""
import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront import __version__
from storefront.config import get_settings
from storefront.core.exceptions import StorefrontError
from storefront.database.connection import close_db, init_db
from storefront.monitoring.logging import setup_logging
from storefront.monitoring.metrics import metrics

from .dependencies import get_webhook_handler
from .routes import api_router, monitoring_router

# Setup logging first
setup_logging()
logger = structlog.get_logger(__name__)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        env=settings.app_env,
        test_mode=settings.is_test_mode,
    )

    try:
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_initialization_failed", error=str(e))
        raise

    yield

    logger.info("application_shutdown")
    await get_webhook_handler().close()
    try:
        await close_db()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error("database_shutdown_error", error=str(e))


app = FastAPI(
    title="Storefront API",
    description=(
        "E-commerce storefront backend: catalog, reviews, cart, wishlist, "
        "Stripe checkout, orders and administration."
    ),
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id_middleware(request: Request, call_next: Any) -> Response:
    """
    Add request ID to all requests for tracing.

    Also adds timing information, structured logging context and HTTP
    metrics.
    """
    request_id = str(uuid.uuid4())
    start_time = time.time()

    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    logger.info(
        "request_started",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        duration = time.time() - start_time
        metrics.record_http_request(request.method, response.status_code, duration)
        logger.info(
            "request_completed",
            request_id=request_id,
            status_code=response.status_code,
            duration_seconds=duration,
        )

        return response

    except Exception as e:
        duration = time.time() - start_time
        metrics.record_http_request(request.method, 500, duration)
        logger.error(
            "request_failed",
            request_id=request_id,
            error=str(e),
            duration_seconds=duration,
        )
        raise

    finally:
        structlog.contextvars.clear_contextvars()


@app.exception_handler(StorefrontError)
async def storefront_exception_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Render domain errors with their own status code."""
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "request_rejected",
        error=exc.message,
        error_type=type(exc).__name__,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies and parameters are a 400, not FastAPI's 422."""
    errors = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error["loc"] if part not in ("body", "query"))
        errors.append(f"{location}: {error['msg']}" if location else error["msg"])
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Validation failed", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    content = exc.detail if isinstance(exc.detail, dict) else {"message": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.
    """
    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"message": "An unexpected error occurred. Please try again later."},
    )


app.include_router(api_router)
app.include_router(monitoring_router)


@app.get("/", tags=["root"])
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "service": settings.app_name,
        "version": __version__,
        "status": "operational",
        "environment": settings.app_env,
        "test_mode": settings.is_test_mode,
        "docs": "/docs",
        "health": "/health",
        "metrics": "/metrics",
    }


def run() -> None:
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "storefront.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        workers=settings.api_workers if not settings.debug else 1,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
