"""
Error taxonomy for the suggestions API.

Every transport failure surfaces as exactly one APIError subclass. The
kind drives retry decisions in ResilientClient and the user-facing
message in the orchestrator, so callers never sniff status codes.
"""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Any, Mapping, Optional

DEFAULT_RETRY_AFTER_SECONDS = 900

RETRYABLE_STATUSES = frozenset({408, 429, 502, 503, 504})


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    NETWORK = "network"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    SERVER = "server"
    UNKNOWN = "unknown"


class APIError(Exception):
    """Base for every transport-level failure."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.message = message
        self.status = status
        self.body = body
        self.headers = dict(headers or {})
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, message={self.message!r})"


class ValidationError(APIError):
    """HTTP 400. field_errors is the backend's errors mapping, verbatim."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field_errors: Optional[dict[str, str]] = None, **kwargs):
        kwargs.setdefault("status", 400)
        super().__init__(message, **kwargs)
        self.field_errors = dict(field_errors or {})


class AuthError(APIError):
    """HTTP 401/403. Never retried."""

    kind = ErrorKind.AUTH

    @property
    def retryable(self) -> bool:
        return False


class NetworkError(APIError):
    """No response at all."""

    kind = ErrorKind.NETWORK

    @property
    def retryable(self) -> bool:
        return True


class RequestTimeoutError(APIError):
    """Attempt deadline exceeded, or HTTP 408."""

    kind = ErrorKind.TIMEOUT

    @property
    def retryable(self) -> bool:
        return True


class RateLimitError(APIError):
    """HTTP 429 with parsed rate-limit headers."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        retry_after: int = DEFAULT_RETRY_AFTER_SECONDS,
        reset_time: int = 0,
        limit: Optional[int] = None,
        remaining: Optional[int] = None,
        **kwargs,
    ):
        kwargs.setdefault("status", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.reset_time = reset_time
        self.limit = limit
        self.remaining = remaining


class NotFoundError(APIError):
    kind = ErrorKind.NOT_FOUND


class ServerError(APIError):
    """HTTP 5xx. Only 502/503/504 are retryable."""

    kind = ErrorKind.SERVER


class UnknownError(APIError):
    kind = ErrorKind.UNKNOWN


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def _int_or_none(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def parse_retry_after(value: Optional[str], now: Optional[datetime] = None) -> Optional[int]:
    """Parse Retry-After as delta-seconds or an HTTP date. None if unusable."""
    if value is None:
        return None
    seconds = _int_or_none(value)
    if seconds is not None:
        return max(seconds, 0)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(int((when - now).total_seconds()), 0)


def _message_from_body(body: Any, fallback: str) -> str:
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    if isinstance(body, str) and body.strip():
        return body.strip()
    return fallback


def error_from_response(
    status: int,
    reason: str,
    body: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> APIError:
    """Build the typed error for a non-2xx response."""
    headers = dict(headers or {})
    message = _message_from_body(body, f"HTTP {status}: {reason}".rstrip(": "))
    common = {"status": status, "body": body, "headers": headers}

    if status in (401, 403):
        return AuthError(message, **common)
    if status == 400:
        field_errors = body.get("errors") if isinstance(body, dict) else None
        return ValidationError(
            message,
            field_errors=field_errors if isinstance(field_errors, dict) else None,
            **common,
        )
    if status == 404:
        return NotFoundError(message, **common)
    if status == 408:
        return RequestTimeoutError(message, **common)
    if status == 429:
        retry_after = parse_retry_after(_header(headers, "Retry-After"))
        return RateLimitError(
            message,
            retry_after=DEFAULT_RETRY_AFTER_SECONDS if retry_after is None else retry_after,
            reset_time=_int_or_none(_header(headers, "X-RateLimit-Reset")) or 0,
            limit=_int_or_none(_header(headers, "X-RateLimit-Limit")),
            remaining=_int_or_none(_header(headers, "X-RateLimit-Remaining")),
            **common,
        )
    if status >= 500:
        return ServerError(message, **common)
    return UnknownError(message, **common)
