"""
Comfy Workflow Meta - Logging Configuration
============================================

Structured logging with optional OpenTelemetry span support.

Features:
- Structured JSON output for production
- Human-readable format for development
- Request ID tracking across one parse call
- Performance timing utilities

Usage:
    from comfy_workflow_meta.logging_config import get_logger, LogContext

    logger = get_logger(__name__)
    logger.warning("Dropped node", extra={"node_id": "12"})

    with LogContext("workflow_1700000000000_ab12cd34"):
        logger.info("Parsing workflow")  # Includes request_id
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import get_settings

__all__ = [
    "StructuredFormatter",
    "ContextFilter",
    "get_logger",
    "set_log_level",
    "set_request_id",
    "clear_request_id",
    "get_request_id",
    "LogContext",
    "log_timing",
    "log_operation",
    "traced_operation",
    "OTEL_AVAILABLE",
]

ROOT_LOGGER_NAME = "comfy_workflow_meta"

# OpenTelemetry is an optional extra; without it traced_operation is a no-op.
try:
    from opentelemetry import trace
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider

    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None


def _otel_active() -> bool:
    return OTEL_AVAILABLE and get_settings().logging.otel_enabled


_otel_initialized = False


def _setup_opentelemetry():
    """Install a tracer provider if tracing is enabled and available."""
    global _otel_initialized

    if _otel_initialized or not _otel_active():
        return

    current = get_settings()
    resource = Resource.create(
        {
            "service.name": current.logging.otel_service_name,
            "service.version": current.version,
        }
    )
    provider = TracerProvider(resource=resource)

    if current.logging.otel_endpoint:
        try:
            from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
            from opentelemetry.sdk.trace.export import BatchSpanProcessor
        except ImportError:
            logging.getLogger(ROOT_LOGGER_NAME).warning(
                "OTLP exporter not installed; spans will not be exported"
            )
        else:
            exporter = OTLPSpanExporter(endpoint=current.logging.otel_endpoint)
            provider.add_span_processor(BatchSpanProcessor(exporter))

    trace.set_tracer_provider(provider)
    _otel_initialized = True


# =============================================================================
# CUSTOM FORMATTER
# =============================================================================

# Standard LogRecord attributes that never go into the JSON "extra" section
_RECORD_ATTRIBUTES = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "stack_info",
    "exc_info",
    "exc_text",
    "thread",
    "threadName",
    "message",
    "asctime",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs structured log messages.

    Supports both text and JSON output formats.
    """

    def __init__(
        self, fmt: str | None = None, datefmt: str | None = None, json_output: bool = False
    ):
        super().__init__(fmt, datefmt)
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        if self.json_output:
            return self._format_json(record)
        return super().format(record)

    def _format_json(self, record: logging.LogRecord) -> str:
        """Format as one JSON object per line."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if _otel_active():
            span = trace.get_current_span()
            if span and span.is_recording():
                ctx = span.get_span_context()
                log_data["trace_id"] = format(ctx.trace_id, "032x")
                log_data["span_id"] = format(ctx.span_id, "016x")

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RECORD_ATTRIBUTES and not key.startswith("_"):
                try:
                    json.dumps(value)
                    log_data[key] = value
                except (TypeError, ValueError):
                    log_data[key] = str(value)

        return json.dumps(log_data)


# =============================================================================
# CONTEXT FILTER
# =============================================================================


# Request id of the current parse; per thread and per asyncio task
_request_id: ContextVar[str | None] = ContextVar("comfy_workflow_meta_request_id", default=None)


class ContextFilter(logging.Filter):
    """Filter that stamps component and the current request id onto every record."""

    def __init__(self, component: str = ROOT_LOGGER_NAME):
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = self.component
        record.request_id = _request_id.get() or "-"
        return True


# =============================================================================
# LOGGER MANAGEMENT
# =============================================================================

_loggers: dict[str, logging.Logger] = {}
_initialized: bool = False
_context_filter: ContextFilter | None = None


def _setup_logging():
    """Initialize the package logging system once."""
    global _initialized, _context_filter

    if _initialized:
        return

    config = get_settings().logging

    _setup_opentelemetry()

    _context_filter = ContextFilter()

    if config.json_output:
        formatter = StructuredFormatter(json_output=True)
    else:
        formatter = StructuredFormatter(fmt=config.format, datefmt=config.date_format)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)

    file_handler = None
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, config.level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    if file_handler:
        root_logger.addHandler(file_handler)
    root_logger.propagate = False

    _initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Configured logger instance under the package namespace
    """
    _setup_logging()

    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"

    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return _loggers[name]


def set_log_level(level: str):
    """Change the log level at runtime (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""
    _setup_logging()
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(numeric_level)


def set_request_id(request_id: str):
    """Set the request ID for log tracing in the current context."""
    _request_id.set(request_id)


def clear_request_id():
    """Clear the request ID of the current context."""
    _request_id.set(None)


def get_request_id() -> str | None:
    return _request_id.get()


# =============================================================================
# LOGGING CONTEXT MANAGER
# =============================================================================


class LogContext:
    """
    Context manager for request-scoped logging.

    The id lives in a ContextVar, so overlapping parses in other threads or
    tasks keep their own id, and exit restores exactly what enter replaced.

    Usage:
        with LogContext("abc123"):
            logger.info("Processing workflow")
            # All logs will include request_id=abc123
    """

    def __init__(self, request_id: str):
        self.request_id = request_id
        self._token: Token | None = None

    def __enter__(self):
        _setup_logging()
        self._token = _request_id.set(self.request_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _request_id.reset(self._token)
            self._token = None
        return False


# =============================================================================
# OPENTELEMETRY SPAN CONTEXT
# =============================================================================


@contextmanager
def traced_operation(name: str, attributes: dict[str, Any] | None = None):
    """
    Context manager for creating an OpenTelemetry span.

    Falls back to no-op if OpenTelemetry is not installed or disabled.
    """
    if _otel_active():
        tracer = trace.get_tracer(get_settings().logging.otel_service_name)
        with tracer.start_as_current_span(name, attributes=attributes or {}):
            yield
    else:
        yield


# =============================================================================
# PERFORMANCE LOGGING
# =============================================================================


def log_operation(
    logger: logging.Logger,
    operation: str,
    success: bool,
    duration_ms: float | None = None,
    **extra,
):
    """Log an operation result at DEBUG (success) or WARNING (failure)."""
    status = "completed" if success else "failed"
    msg = f"{operation} {status}"
    if duration_ms is not None:
        msg += f" ({duration_ms:.1f}ms)"

    level = logging.DEBUG if success else logging.WARNING
    logger.log(level, msg, extra={"operation": operation, "success": success, **extra})


@contextmanager
def log_timing(logger: logging.Logger, operation: str, **extra):
    """
    Context manager to log operation timing.

    Usage:
        with log_timing(logger, "parse_workflow"):
            snapshot = assembler.parse(raw)
    """
    start = time.perf_counter()
    success = False
    try:
        yield
        success = True
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        log_operation(logger, operation, success, duration_ms, **extra)
