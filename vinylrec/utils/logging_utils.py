"""
Logging utilities for the recommendation and pricing core.

Loggers write one line per record to stdout, either as JSON (deployed
services) or as readable text (local runs). The format, level and masking
come from ``LoggingSettings`` unless overridden per logger.

Every record carries the active request context, when there is one: the
request id, the buyer and the operation being served. Structured fields
passed through ``log_extra`` end up under ``extra``, with buyer and seller
contact details and credentials masked.
"""

from __future__ import annotations

import json
import logging
import sys
import time
import traceback
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from functools import wraps
from typing import Any, Callable, Dict, Iterator, Optional, TypeVar

from ..config.settings import LoggingSettings, get_settings


F = TypeVar("F", bound=Callable[..., Any])

MASK = "***MASKED***"

# Substrings of field names whose values never reach the logs
SENSITIVE_FIELDS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "oauth",
    "email",
    "phone",
    "address",
    "card",
)

MAX_VALUE_LENGTH = 1000
MAX_DEPTH = 10


@dataclass
class RequestContext:
    """The buyer request currently being served."""

    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    buyer_id: Optional[str] = None
    operation: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)
    extra: Dict[str, Any] = field(default_factory=dict)

    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    def as_fields(self) -> Dict[str, Any]:
        fields: Dict[str, Any] = {"request_id": self.request_id}
        if self.buyer_id:
            fields["buyer_id"] = self.buyer_id
        if self.operation:
            fields["operation"] = self.operation
        return fields


_current_request: ContextVar[Optional[RequestContext]] = ContextVar("vinylrec_request", default=None)


def get_request_context() -> Optional[RequestContext]:
    return _current_request.get()


@contextmanager
def request_context(
    request_id: Optional[str] = None,
    buyer_id: Optional[str] = None,
    operation: Optional[str] = None,
    **extra,
) -> Iterator[RequestContext]:
    """Scope log records to one operation.

    A nested scope keeps the enclosing request and buyer ids, so the two
    pipeline calls made for an A/B bundle share one request id. The
    enclosing scope is restored on exit.
    """
    outer = _current_request.get()
    ctx = RequestContext(
        request_id=request_id or (outer.request_id if outer else uuid.uuid4().hex),
        buyer_id=buyer_id or (outer.buyer_id if outer else None),
        operation=operation,
        extra=extra,
    )
    token = _current_request.set(ctx)
    try:
        yield ctx
    finally:
        _current_request.reset(token)


def scrub(value: Any, depth: int = 0) -> Any:
    """Mask sensitive keys and clip long strings, recursively."""
    if depth > MAX_DEPTH:
        return "...TRUNCATED..."
    if isinstance(value, dict):
        return {
            k: MASK if is_sensitive(str(k)) else scrub(v, depth + 1)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple, set)):
        return [scrub(v, depth + 1) for v in value]
    if isinstance(value, str) and len(value) > MAX_VALUE_LENGTH:
        return f"{value[:MAX_VALUE_LENGTH]}...({len(value)} chars)"
    return value


def is_sensitive(name: str) -> bool:
    lowered = name.lower()
    return any(s in lowered for s in SENSITIVE_FIELDS)


def _record_fields(record: logging.LogRecord, mask: bool) -> Dict[str, Any]:
    fields = getattr(record, "extra", None)
    if not isinstance(fields, dict) or not fields:
        return {}
    return scrub(fields) if mask else fields


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def __init__(
        self,
        include_timestamp: bool = True,
        include_request_id: bool = True,
        mask_sensitive: bool = True,
        extra_fields: Optional[Dict[str, Any]] = None,
    ):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_request_id = include_request_id
        self.mask_sensitive = mask_sensitive
        self.extra_fields = dict(extra_fields or {})

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if self.include_timestamp:
            payload["timestamp"] = datetime.utcnow().isoformat() + "Z"

        ctx = get_request_context()
        if ctx is not None and self.include_request_id:
            payload.update(ctx.as_fields())
            payload["elapsed_ms"] = round(ctx.elapsed_ms(), 2)

        fields = _record_fields(record, self.mask_sensitive)
        if fields:
            payload["extra"] = fields
        payload.update(self.extra_fields)

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": traceback.format_exception(exc_type, exc, tb),
            }
        return json.dumps(payload, default=str, ensure_ascii=False)


class TextFormatter(logging.Formatter):
    """Single-line text for local runs, colored on a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True, mask_sensitive: bool = True):
        super().__init__()
        self.use_colors = use_colors and sys.stdout.isatty()
        self.mask_sensitive = mask_sensitive

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8}"
        if self.use_colors:
            level = f"{self.LEVEL_COLORS.get(record.levelno, '')}{level}{self.RESET}"

        head = f"{datetime.now():%H:%M:%S} {level} {record.name}"
        ctx = get_request_context()
        if ctx is not None:
            head += f" [{ctx.request_id[:8]}{' ' + ctx.operation if ctx.operation else ''}]"

        line = f"{head} - {record.getMessage()}"
        fields = _record_fields(record, self.mask_sensitive)
        if fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_formatter(settings: LoggingSettings, service_name: str, environment: str) -> logging.Formatter:
    if settings.format.lower() == "text":
        return TextFormatter(mask_sensitive=settings.mask_sensitive_fields)
    return JSONFormatter(
        include_timestamp=settings.include_timestamp,
        include_request_id=settings.include_request_id,
        mask_sensitive=settings.mask_sensitive_fields,
        extra_fields={"service": service_name, "environment": environment},
    )


def get_logger(
    name: str,
    level: Optional[int] = None,
    format_type: Optional[str] = None,
) -> logging.Logger:
    """Get a logger writing to stdout.

    Args:
        name: Logger name, usually ``__name__``.
        level: Overrides the configured level.
        format_type: "json" or "text"; overrides the configured format.

    Returns:
        The logger. Loggers are configured once; later calls return it as is.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    settings = get_settings()
    log_settings = settings.logging
    if format_type is not None:
        log_settings = LoggingSettings(
            level=log_settings.level,
            format=format_type,
            include_timestamp=log_settings.include_timestamp,
            include_request_id=log_settings.include_request_id,
            mask_sensitive_fields=log_settings.mask_sensitive_fields,
        )
    if level is None:
        level = logging.getLevelName(log_settings.level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(log_settings, settings.service_name, settings.environment.value))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def log_extra(
    logger: logging.Logger,
    level: int,
    msg: str,
    exc_info: bool = False,
    **fields,
) -> None:
    """Log ``msg`` with structured fields attached as ``record.extra``."""
    logger.log(level, msg, exc_info=exc_info, extra={"extra": fields})


@contextmanager
def log_block(
    logger: logging.Logger,
    operation: str,
    level: int = logging.DEBUG,
    **fields,
) -> Iterator[None]:
    """Log how long a block took, and whether it raised.

    Usage:
        with log_block(logger, "score_candidates", release_id="r-1"):
            score()
    """
    started = time.monotonic()
    try:
        yield
    except Exception as e:
        log_extra(
            logger,
            logging.WARNING,
            f"Failed {operation}",
            operation=operation,
            elapsed_ms=round((time.monotonic() - started) * 1000, 2),
            status="error",
            error_type=type(e).__name__,
            error=str(e),
            **fields,
        )
        raise
    log_extra(
        logger,
        level,
        f"Completed {operation}",
        operation=operation,
        elapsed_ms=round((time.monotonic() - started) * 1000, 2),
        status="success",
        **fields,
    )


def timed(
    logger: Optional[logging.Logger] = None,
    level: int = logging.DEBUG,
    name: Optional[str] = None,
) -> Callable[[F], F]:
    """Decorator form of ``log_block`` for whole functions."""
    def decorator(func: F) -> F:
        operation = name or func.__qualname__
        func_logger = logger or get_logger(func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            with log_block(func_logger, operation, level=level):
                return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]
    return decorator
