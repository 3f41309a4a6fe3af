"""structlog setup plus the small helpers the services log through.

Lines are JSON outside debug mode. When ``OTEL_EXPORTER_OTLP_ENDPOINT`` is
set, stdlib log records are also shipped over OTLP/HTTP.
"""

import logging
import sys
import time
from collections.abc import AsyncIterator, Iterator
from contextlib import asynccontextmanager, contextmanager
from typing import Any

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

from ledgerlink.config import parse_key_value_pairs, settings

SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.format_exc_info,
    structlog.processors.TimeStamper(fmt="iso"),
]


def _select_renderer() -> Processor:
    return structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()


def _build_otlp_logs_endpoint(endpoint: str) -> str:
    base = endpoint.rstrip("/")
    return base if base.endswith("/v1/logs") else f"{base}/v1/logs"


def _configure_otel_logging() -> None:
    endpoint = settings.otel_exporter_otlp_endpoint
    if not endpoint:
        return

    try:
        from opentelemetry._logs import set_logger_provider
        from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
        from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
        from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
        from opentelemetry.sdk.resources import Resource
    except ImportError:
        # otel extra not installed
        logging.getLogger(__name__).warning("OTEL log exporter not available", exc_info=True)
        return

    attributes = {"service.name": settings.otel_service_name, "deployment.environment": settings.environment}
    attributes.update(parse_key_value_pairs(settings.otel_resource_attributes))

    provider = LoggerProvider(resource=Resource.create(attributes))
    provider.add_log_record_processor(
        BatchLogRecordProcessor(OTLPLogExporter(endpoint=_build_otlp_logs_endpoint(endpoint)))
    )
    set_logger_provider(provider)
    logging.getLogger().addHandler(LoggingHandler(level=logging.INFO, logger_provider=provider))


def configure_logging() -> None:
    structlog.configure(
        processors=[*SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processor=_select_renderer(), foreign_pre_chain=SHARED_PROCESSORS)
    )
    logging.basicConfig(handlers=[handler], level=logging.DEBUG if settings.debug else logging.INFO)
    # SQL echo goes through settings.debug on the engine; keep the logger quiet otherwise.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO if settings.debug else logging.WARNING)

    _configure_otel_logging()


def get_logger(name: str | None = None) -> BoundLogger:
    return structlog.get_logger(name)


@contextmanager
def bound_context(**values: Any) -> Iterator[None]:
    """Bind structlog contextvars for the duration of a block.

    Usage:
        with bound_context(detection_run_id=str(run_id), user_id=str(user_id)):
            ...  # every log line here carries both keys

    Only the keys bound here are removed on exit, so request-level context
    set by the HTTP middleware survives.
    """
    structlog.contextvars.bind_contextvars(**values)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*values)


class _Timer:
    """Shared body of log_timing / async_log_timing."""

    def __init__(self, operation: str, logger: BoundLogger | None, level: str, context: dict[str, Any]) -> None:
        self.operation = operation
        self.log = logger or get_logger(__name__)
        self.level = level
        self.context = context
        self.result: dict[str, Any] = {}
        self.start = time.perf_counter()

    def finish(self, failed: bool) -> None:
        duration_ms = round((time.perf_counter() - self.start) * 1000, 2)
        self.result["duration_ms"] = duration_ms
        extra = {k: v for k, v in self.result.items() if k != "duration_ms"}
        if failed:
            extra["failed"] = True
        getattr(self.log, self.level, self.log.info)(
            f"{self.operation} completed",
            operation=self.operation,
            duration_ms=duration_ms,
            **self.context,
            **extra,
        )


@contextmanager
def log_timing(
    operation: str,
    logger: BoundLogger | None = None,
    level: str = "info",
    **context: Any,
) -> Iterator[dict[str, Any]]:
    """Log how long a block took.

    The yielded dict can be filled with result counters; they are logged
    alongside ``duration_ms``, which is also written back into it on exit.

    Usage:
        with log_timing("generate_candidates", logger=logger, pool=len(pool)) as ctx:
            candidates = generate_candidates(pool, params)
            ctx["candidates"] = len(candidates)
    """
    timer = _Timer(operation, logger, level, context)
    failed = True
    try:
        yield timer.result
        failed = False
    finally:
        timer.finish(failed)


@asynccontextmanager
async def async_log_timing(
    operation: str,
    logger: BoundLogger | None = None,
    level: str = "info",
    **context: Any,
) -> AsyncIterator[dict[str, Any]]:
    """Async twin of :func:`log_timing`."""
    timer = _Timer(operation, logger, level, context)
    failed = True
    try:
        yield timer.result
        failed = False
    finally:
        timer.finish(failed)


def log_exception(
    logger: BoundLogger,
    exc: BaseException,
    context: str,
    *,
    level: str = "error",
    include_traceback: bool = True,
    **extra: Any,
) -> None:
    """Log an exception with its type and module attached.

    Usage:
        except AmbiguousMatchError as exc:
            log_exception(logger, exc, "Pending transfer side is ambiguous", level="warning")
    """
    fields: dict[str, Any] = {
        "error": str(exc),
        "error_type": type(exc).__name__,
        "error_module": type(exc).__module__,
        **extra,
    }
    if include_traceback:
        fields["exc_info"] = exc
    getattr(logger, level, logger.error)(context, **fields)
