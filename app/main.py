"""
Main Application - FastAPI application setup.
"""

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from app.api.routes import ledger_router
from app.api.routes import router
from app.api.subscription_routes import router as subscription_router
from app.config import settings
from app.db.session import close_engines, create_schema, get_write_engine
from app.observability import get_logger, metrics, setup_logging, setup_tracing
from app.observability.logging import log_context
from app.observability.metrics import get_metrics_handler, track_http_request
from app.observability.tracing import instrument_fastapi, instrument_sqlalchemy
from app.services.cache import AccountCache
from app.services.google_auth import GoogleUserInfoClient
from app.services.llm_client import OpenRouterClient
from app.services.razorpay_provider import RazorpayProvider

# Setup logging before anything else
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Creates the outbound clients on startup and closes them on shutdown.
    """
    logger.info(
        "application_starting",
        service=settings.api_title,
        version=settings.api_version,
        tracing_enabled=settings.tracing_enabled,
        metrics_enabled=settings.metrics_enabled,
        payments_configured=settings.razorpay_configured,
    )

    instrument_sqlalchemy(get_write_engine())
    if settings.database_create_schema:
        await create_schema()
        logger.info("database_schema_ready")

    app.state.user_info_client = GoogleUserInfoClient(settings.google_userinfo_url)
    app.state.llm_client = OpenRouterClient(
        api_key=settings.openrouter_api_key,
        base_url=settings.openrouter_base_url,
        referer=settings.openrouter_referer,
        app_title=settings.openrouter_app_title,
        timeout_seconds=settings.llm_timeout_seconds,
        max_tokens=settings.llm_max_tokens,
        temperature=settings.llm_temperature,
    )
    if settings.razorpay_configured:
        app.state.billing_provider = RazorpayProvider(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
        )
    else:
        logger.warning("payment_provider_not_configured")

    yield

    logger.info("application_shutting_down")
    await app.state.user_info_client.close()
    await app.state.llm_client.aclose()
    if app.state.billing_provider is not None:
        await app.state.billing_provider.aclose()
    await close_engines()
    logger.info("database_engines_closed")


app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    description=settings.api_description,
    lifespan=lifespan,
)

app.state.account_cache = AccountCache(
    ttl_seconds=settings.account_cache_ttl_seconds,
    max_entries=settings.account_cache_max_entries,
)
app.state.billing_provider = None


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with a sanitized copy of the error list."""
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

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        errors=sanitized_errors,
    )
    return JSONResponse(status_code=422, content={"detail": sanitized_errors})


setup_tracing()
instrument_fastapi(app)

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
    """Log all HTTP requests with timing and a request id."""
    start_time = time.perf_counter()
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    method = request.method
    endpoint = request.url.path

    with log_context(request_id=request_id), track_http_request(endpoint, method) as tracker:
        logger.info("request_started", method=method, path=endpoint)
        try:
            response = await call_next(request)
        except Exception as e:
            metrics.record_error(type(e).__name__, "http_request")
            logger.error(
                "request_failed",
                method=method,
                path=endpoint,
                error=str(e),
                duration_seconds=time.perf_counter() - start_time,
                exc_info=True,
            )
            raise

        tracker.set_status_code(response.status_code)
        logger.info(
            "request_completed",
            method=method,
            path=endpoint,
            status_code=response.status_code,
            duration_seconds=time.perf_counter() - start_time,
        )

    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(router)
app.include_router(ledger_router)
app.include_router(subscription_router)

_render_metrics = get_metrics_handler()


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
    """Prometheus metrics in text exposition format."""
    return PlainTextResponse(_render_metrics())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
