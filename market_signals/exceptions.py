"""
Signal Source Exceptions - Custom error hierarchy.

Raised by individual sources. The registry absorbs them and
records an incident; they never reach the presentation layer
on their own.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class SignalSourceError(Exception):
    """Base exception for all signal source errors."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.source_name = source_name
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "source_name": self.source_name,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class RateLimitError(SignalSourceError):
    """Upstream answered 429. Never retried."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        retry_after_seconds: Optional[int] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class FetchError(SignalSourceError):
    """Failed to fetch data from the source."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.status_code = status_code
        self.url = url

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "url": self.url,
        })
        return data


class ParseError(SignalSourceError):
    """Response body could not be decoded."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        raw_data: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.raw_data = raw_data[:500] if raw_data else None

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["raw_data_preview"] = self.raw_data[:100] if self.raw_data else None
        return data


class AuthenticationError(SignalSourceError):
    """Upstream rejected our credentials. Never retried."""
    pass


class UpstreamError(SignalSourceError):
    """Upstream answered 200 with an error payload."""
    pass


class SourceUnavailableError(SignalSourceError):
    """Source is down, timed out, or its circuit is open."""

    def __init__(
        self,
        message: str,
        source_name: str = "",
        is_permanent: bool = False,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, source_name, details)
        self.is_permanent = is_permanent

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["is_permanent"] = self.is_permanent
        return data


class CircuitOpenError(SourceUnavailableError):
    """Call refused locally because the source's circuit is open."""
    pass
