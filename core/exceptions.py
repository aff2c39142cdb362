"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Errors that cross the core/presentation boundary.

Individual source failures never reach this level; they are
absorbed by the registry. Only configuration problems and
total fetch failure are raised to callers.

============================================================
EXCEPTION HIERARCHY
============================================================
IdeaSignalException (base)
├── ConfigurationError
│   └── MissingConfigError
├── TotalFetchFailureError
└── CacheError

============================================================
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorClassification(Enum):
    """Classification of error recoverability."""

    RECOVERABLE = "recoverable"
    """Error can be recovered from automatically."""

    TRANSIENT = "transient"
    """Temporary error, a manual retry may succeed."""

    NON_RECOVERABLE = "non_recoverable"
    """Permanent error, the request must change."""


# ============================================================
# BASE EXCEPTION
# ============================================================

class IdeaSignalException(Exception):
    """
    Base exception for all pipeline errors.

    All exceptions carry:
    - severity: for logging
    - context: for debugging
    - classification: whether a retry can help
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM
    default_classification: ErrorClassification = ErrorClassification.RECOVERABLE

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        classification: Optional[ErrorClassification] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.classification = classification or self.default_classification
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_retryable(self) -> bool:
        """Check if a manual retry can succeed."""
        return self.classification in (
            ErrorClassification.RECOVERABLE,
            ErrorClassification.TRANSIENT,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for logging/API responses."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "severity": self.severity.value,
            "classification": self.classification.value,
            "retryable": self.is_retryable,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================================
# CONFIGURATION ERRORS
# ============================================================

class ConfigurationError(IdeaSignalException):
    """
    Invalid configuration or query context.

    Raised synchronously, before any fetch is attempted.
    """

    default_severity = Severity.HIGH
    default_classification = ErrorClassification.NON_RECOVERABLE

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        actual_value: Optional[Any] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})

        if config_key:
            context["config_key"] = config_key
        if actual_value is not None:
            context["actual_value"] = str(actual_value)[:100]

        super().__init__(message, context=context, **kwargs)


class MissingConfigError(ConfigurationError):
    """Required setting is missing."""

    def __init__(self, config_key: str, **kwargs):
        super().__init__(
            f"Missing required configuration: {config_key}",
            config_key=config_key,
            **kwargs,
        )


# ============================================================
# FETCH ERRORS
# ============================================================

class TotalFetchFailureError(IdeaSignalException):
    """
    Every configured source failed for a request.

    Surfaced to the presentation layer with a human-readable
    message; the user decides whether to retry.
    """

    default_severity = Severity.MEDIUM
    default_classification = ErrorClassification.TRANSIENT

    USER_MESSAGE = "Cannot fetch data for this tile right now. Please retry."

    def __init__(
        self,
        message: str,
        tile_type: Optional[str] = None,
        sources_tried: Optional[List[str]] = None,
        last_error: Optional[Exception] = None,
        **kwargs,
    ):
        context = kwargs.pop("context", {})
        if tile_type:
            context["tile_type"] = tile_type
        if sources_tried:
            context["sources_tried"] = list(sources_tried)

        super().__init__(message, context=context, cause=last_error, **kwargs)
        self.tile_type = tile_type
        self.sources_tried = list(sources_tried or [])

    @property
    def user_message(self) -> str:
        return self.USER_MESSAGE


class CacheError(IdeaSignalException):
    """Durable cache operation failed."""

    default_severity = Severity.LOW
    default_classification = ErrorClassification.RECOVERABLE


# ============================================================
# ERROR RESPONSE
# ============================================================

@dataclass
class ErrorResponse:
    """User-facing error payload with a manual retry hint."""

    message: str
    retryable: bool
    error_type: str

    @classmethod
    def from_exception(cls, exc: IdeaSignalException) -> "ErrorResponse":
        message = exc.user_message if isinstance(exc, TotalFetchFailureError) else exc.message
        return cls(
            message=message,
            retryable=exc.is_retryable,
            error_type=type(exc).__name__,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.message,
            "retryable": self.retryable,
            "error_type": self.error_type,
        }
