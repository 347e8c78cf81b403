"""Utility modules for the recommendation and pricing core.

Provides:
- Logging utilities with JSON/text formatting
- Request context tracking
- Timing helpers
"""

from .logging_utils import (
    get_logger,
    request_context,
    get_request_context,
    log_extra,
    timed,
    log_block,
    RequestContext,
    JSONFormatter,
    TextFormatter,
)

__all__ = [
    "get_logger",
    "request_context",
    "get_request_context",
    "log_extra",
    "timed",
    "log_block",
    "RequestContext",
    "JSONFormatter",
    "TextFormatter",
]
