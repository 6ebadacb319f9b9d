"""
Error classification for upstream analysis API calls.

Maps transport failures and HTTP error responses onto a typed ErrorRecord.
The mapping is pure; logging the raw failure is left to the caller.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional

import httpx


class ErrorKind(str, Enum):
    """Failure taxonomy for the fallback pipeline."""
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"
    BAD_REQUEST = "BAD_REQUEST"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    ACCESS_FORBIDDEN = "ACCESS_FORBIDDEN"
    ENDPOINT_NOT_FOUND = "ENDPOINT_NOT_FOUND"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    SERVER_ERROR = "SERVER_ERROR"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    API_ERROR = "API_ERROR"
    REQUEST_FAILED = "REQUEST_FAILED"


TRANSIENT_KINDS = frozenset({
    ErrorKind.SERVICE_UNAVAILABLE,
    ErrorKind.TIMEOUT,
    ErrorKind.RATE_LIMIT_EXCEEDED,
    ErrorKind.SERVER_ERROR,
    ErrorKind.GATEWAY_ERROR,
    ErrorKind.REQUEST_FAILED,
})

DEFAULT_RETRY_AFTER = "60"


@dataclass(frozen=True)
class ErrorRecord:
    """A classified failure. Never persisted."""
    kind: ErrorKind
    http_status: int
    message: str
    retryable: bool
    retry_after: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "httpStatus": self.http_status,
            "message": self.message,
            "retryable": self.retryable,
            "retryAfter": self.retry_after,
        }


class FallbackAPIError(Exception):
    """Terminal failure of a fallback API call, carrying its ErrorRecord."""

    def __init__(self, record: ErrorRecord):
        super().__init__(record.message)
        self.record = record

    @property
    def kind(self) -> ErrorKind:
        return self.record.kind

    @property
    def retryable(self) -> bool:
        return self.record.retryable

    def __repr__(self) -> str:
        return f"FallbackAPIError({self.record.kind.value}, status={self.record.http_status})"


# Fixed status mappings: status -> (kind, message)
_STATUS_TABLE = {
    401: (ErrorKind.AUTHENTICATION_FAILED, "API authentication failed - check API key"),
    403: (ErrorKind.ACCESS_FORBIDDEN, "API access forbidden - insufficient permissions"),
    404: (ErrorKind.ENDPOINT_NOT_FOUND, "API endpoint not found"),
    500: (ErrorKind.SERVER_ERROR, "API server internal error"),
    502: (ErrorKind.GATEWAY_ERROR, "API gateway error"),
    503: (ErrorKind.SERVICE_UNAVAILABLE, "API service temporarily unavailable"),
}


def upstream_message(body: Any) -> Optional[str]:
    """Best-effort extraction of an error message from a response body."""
    if isinstance(body, Mapping):
        message = body.get("message")
        if isinstance(message, str) and message:
            return message
        error = body.get("error")
        if isinstance(error, Mapping):
            nested = error.get("message")
            if isinstance(nested, str) and nested:
                return nested
        if isinstance(error, str) and error:
            return error
        detail = body.get("detail")
        if isinstance(detail, str) and detail:
            return detail
    elif isinstance(body, str) and body.strip():
        return body.strip()[:200]
    return None


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        # HTTP-date form is not interpreted
        return None
    return seconds if seconds >= 0 else None


def classify_http_status(
    status: int,
    headers: Optional[Mapping[str, str]] = None,
    body: Any = None
) -> ErrorRecord:
    """Classify an HTTP response with status >= 400."""
    headers = headers or {}

    if status == 400:
        detail = upstream_message(body) or "Invalid request format"
        return ErrorRecord(ErrorKind.BAD_REQUEST, 400, f"Bad request: {detail}", retryable=False)

    if status == 429:
        raw_retry_after = headers.get("retry-after")
        shown = raw_retry_after if raw_retry_after else DEFAULT_RETRY_AFTER
        return ErrorRecord(
            ErrorKind.RATE_LIMIT_EXCEEDED,
            429,
            f"API rate limit exceeded - retry after {shown} seconds",
            retryable=True,
            retry_after=_parse_retry_after(raw_retry_after)
        )

    if status in _STATUS_TABLE:
        kind, message = _STATUS_TABLE[status]
        return ErrorRecord(kind, status, message, retryable=status >= 500)

    detail = upstream_message(body) or httpx.codes.get_reason_phrase(status) or "Unknown error"
    return ErrorRecord(
        ErrorKind.API_ERROR,
        status,
        f"API error {status}: {detail}",
        retryable=status >= 500
    )


def classify_error(error: BaseException, body: Any = None) -> ErrorRecord:
    """
    Classify a failure captured from the transport layer.

    Checked in order: connection refused / name resolution, timeouts,
    HTTP status errors, then anything else as a transient request failure.
    """
    if isinstance(error, httpx.ConnectError):
        return ErrorRecord(ErrorKind.SERVICE_UNAVAILABLE, 503, "API service unavailable", retryable=True)

    if isinstance(error, httpx.TimeoutException):
        return ErrorRecord(ErrorKind.TIMEOUT, 408, "API request timeout", retryable=True)

    if isinstance(error, httpx.HTTPStatusError):
        response = error.response
        if body is None:
            try:
                body = response.json()
            except (ValueError, httpx.ResponseNotRead):
                body = None
        return classify_http_status(response.status_code, response.headers, body)

    return ErrorRecord(
        ErrorKind.REQUEST_FAILED,
        0,
        f"API request failed: {error}",
        retryable=True
    )
