"""
Error types raised by the recommendation and pricing core.

status_code is a mapping hint for hosts that expose these operations
over HTTP; nothing in this package depends on it.
"""

from typing import Any, Dict, Optional


class RecommendationError(Exception):
    """Base class for errors surfaced to callers."""

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
        }


class InvalidArgument(RecommendationError):
    """A limit is out of range or a required field is missing."""

    status_code = 400


class NotFound(RecommendationError):
    """A referenced release (or its market data) does not exist."""

    status_code = 404


class UpstreamFailure(RecommendationError):
    """The catalog collaborator failed."""

    status_code = 500


class RecordingFailure(RecommendationError):
    """A click event could not be persisted."""

    status_code = 500
