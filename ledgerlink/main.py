"""FastAPI application for transfer detection and reconciliation."""

import time
import traceback
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog
from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.config import settings
from ledgerlink.database import engine, get_db, init_db
from ledgerlink.logger import bound_context, configure_logging, get_logger
from ledgerlink.routers import pending_transfers, transfers
from ledgerlink.services.transfer_scoring import load_detection_config

configure_logging()
logger = get_logger(__name__)


def _init_otel_instrumentation() -> None:
    if not settings.otel_exporter_otlp_endpoint:
        return
    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
    except ImportError:
        logger.warning("OTEL instrumentation not available", exc_info=True)
        return

    FastAPIInstrumentor.instrument()
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    logger.info("OTEL instrumentation initialized", components=["fastapi", "sqlalchemy"])


_init_otel_instrumentation()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    await init_db()
    config = load_detection_config()
    logger.info(
        "Ledgerlink started",
        version=settings.app_version,
        environment=settings.environment,
        auto_link_threshold=config.auto_link_threshold,
        date_tolerance_days=config.date_tolerance_days,
    )
    yield
    logger.info("Ledgerlink shutting down")


app = FastAPI(
    title="Ledgerlink API",
    description="Inter-account transfer detection, review and pending-transfer tracking",
    version=settings.app_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def request_context_middleware(request: Request, call_next: Any) -> Response:
    """Tag every log line of a request with its id, echoed back as X-Request-ID."""
    request_id = request.headers.get("X-Request-ID") or str(uuid4())
    structlog.contextvars.clear_contextvars()

    with bound_context(request_id=request_id, method=request.method, path=request.url.path):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request failed", duration_ms=round((time.perf_counter() - started) * 1000, 2))
            raise
        logger.info(
            "Request handled",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything the routers did not translate becomes a JSON 500."""
    content: dict[str, Any] = {
        "detail": str(exc) if settings.debug else "An internal server error occurred.",
        "request_id": request.headers.get("X-Request-ID"),
    }
    if settings.debug:
        content["trace"] = traceback.format_exc()
    return JSONResponse(status_code=500, content=content)


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
)

app.include_router(transfers.router)
app.include_router(pending_transfers.router)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)) -> Response:
    """200 when the database answers, 503 otherwise."""
    try:
        await db.execute(text("SELECT 1"))
        database_ok = True
    except SQLAlchemyError as exc:
        logger.error("Health check: database unreachable", error=str(exc), error_type=type(exc).__name__)
        database_ok = False

    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": {"database": database_ok},
            "auto_link_threshold": load_detection_config().auto_link_threshold,
            "version": settings.app_version,
        },
    )
