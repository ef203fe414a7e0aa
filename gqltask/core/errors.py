"""
Error classification for gqltask.

Every failure raised by the request builder, the response processor and the
executor is a TaskError subclass carrying an ErrorInfo, so callers can route
on ``error.info.kind`` or ``error.info.retryable`` instead of matching
message strings.
"""

from enum import Enum
from typing import Any, Optional
import httpx
from pydantic import BaseModel, Field


class ErrorKind(str, Enum):
    """Standardized error categories."""

    # Network/connectivity errors
    CONNECTION = "connection"       # Connection refused, DNS failure
    TIMEOUT = "timeout"             # Request/response timeout

    # HTTP-specific errors
    RATE_LIMIT = "rate_limit"       # 429 Too Many Requests
    AUTH = "auth"                   # 401/403
    NOT_FOUND = "not_found"         # 404
    CLIENT_ERROR = "client_error"   # other 4xx
    SERVER_ERROR = "server_error"   # 5xx

    # Task input errors
    TEMPLATE = "template"           # Missing or unresolved template value
    SCHEMA = "schema"               # Invalid configuration value (e.g. URI)

    # Response errors
    ENCODING = "encoding"           # Invalid UTF-8 or undefined code point
    PARSE = "parse"                 # Body is not a JSON object
    GRAPHQL = "graphql"             # Server reported GraphQL errors

    SECRET = "secret"               # Encryption not configured / bad token

    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """Standardized error object attached to every TaskError."""

    kind: ErrorKind = Field(
        default=ErrorKind.UNKNOWN,
        description="Error category"
    )
    retryable: bool = Field(
        default=False,
        description="Whether this error is worth retrying"
    )
    code: str = Field(
        default="UNKNOWN",
        description="Error code (HTTP_429, GRAPHQL_ERRORS, ...)"
    )
    message: str = Field(
        default="Unknown error",
        description="Human-readable error message"
    )
    source: str = Field(
        default="graphql",
        description="Component that produced this error"
    )
    http_status: Optional[int] = Field(
        None, description="HTTP status code (for HTTP errors)"
    )
    retry_after: Optional[int] = Field(
        None, description="Retry-After header value in seconds"
    )
    exception_type: Optional[str] = Field(
        None, description="Python exception class name"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Optional extra context"
    )

    def to_dict(self) -> dict[str, Any]:
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
            "source": self.source,
        }
        if self.http_status is not None:
            d["http_status"] = self.http_status
        if self.retry_after is not None:
            d["retry_after"] = self.retry_after
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        if self.details:
            d["details"] = self.details
        return d


class TaskError(Exception):
    """Base class for all gqltask failures."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    code: str = "UNKNOWN"
    source: str = "graphql"

    def __init__(self, message: str, info: Optional[ErrorInfo] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.info = info or ErrorInfo(
            kind=self.kind,
            retryable=False,
            code=self.code,
            message=message,
            source=self.source,
            exception_type=type(self).__name__,
            details=details,
        )


class TemplateError(TaskError):
    """A required template is missing, renders empty or references an undefined variable."""
    kind = ErrorKind.TEMPLATE
    code = "TEMPLATE_ERROR"
    source = "render"


class UriError(TaskError):
    """The rendered URI is not a valid absolute URI."""
    kind = ErrorKind.SCHEMA
    code = "INVALID_URI"
    source = "request"


class EncodingError(TaskError):
    """The response body is not valid UTF-8 or holds an undefined code point."""
    kind = ErrorKind.ENCODING
    code = "ILLEGAL_CODE_POINT"
    source = "response"


class DecodeError(TaskError):
    """The response body is not a JSON object."""
    kind = ErrorKind.PARSE
    code = "INVALID_JSON"
    source = "response"


class GraphQLError(TaskError):
    """The server answered with a non-null ``errors`` field and fail_on_errors is on."""
    kind = ErrorKind.GRAPHQL
    code = "GRAPHQL_ERRORS"
    source = "response"

    def __init__(self, errors: Any, serialized: str):
        super().__init__(f"GraphQL query failed with errors: {serialized}", errors=errors)
        self.errors = errors


class SecretError(TaskError):
    kind = ErrorKind.SECRET
    code = "SECRET_ERROR"
    source = "secret"


class HttpStatusError(TaskError):
    """Non-2xx response while allow_failed is off."""

    def __init__(self, status_code: int, reason: str = "", headers: Optional[dict] = None,
                 response_body: Optional[str] = None):
        message = f"HTTP {status_code}" + (f": {reason}" if reason else "")
        super().__init__(
            message,
            info=classify_http_error(status_code, message, headers=headers, response_body=response_body),
        )
        self.status_code = status_code


def classify_http_error(
    status_code: int,
    message: str = "",
    headers: Optional[dict] = None,
    response_body: Optional[str] = None,
) -> ErrorInfo:
    """Classify HTTP errors into standardized ErrorInfo."""
    headers = {str(k).lower(): v for k, v in (headers or {}).items()}

    retry_after = None
    ra = headers.get("retry-after")
    if isinstance(ra, list):
        ra = ra[0] if ra else None
    if ra:
        try:
            retry_after = int(ra)
        except ValueError:
            pass

    details = {"response_body": response_body[:500]} if response_body else {}

    if status_code == 429:
        kind, retryable, default = ErrorKind.RATE_LIMIT, True, "Too Many Requests"
    elif status_code == 401:
        kind, retryable, default = ErrorKind.AUTH, False, "Unauthorized"
    elif status_code == 403:
        kind, retryable, default = ErrorKind.AUTH, False, "Forbidden"
    elif status_code == 404:
        kind, retryable, default = ErrorKind.NOT_FOUND, False, "Not Found"
    elif 400 <= status_code < 500:
        kind, retryable, default = ErrorKind.CLIENT_ERROR, False, f"Client Error {status_code}"
    elif status_code >= 500:
        kind, retryable, default = ErrorKind.SERVER_ERROR, True, f"Server Error {status_code}"
    else:
        kind, retryable, default = ErrorKind.UNKNOWN, False, f"HTTP Error {status_code}"

    return ErrorInfo(
        kind=kind,
        retryable=retryable,
        code=f"HTTP_{status_code}",
        message=message or default,
        source="http",
        http_status=status_code,
        retry_after=retry_after if retryable else None,
        details=details,
    )


def classify_connection_error(error: Exception, source: str = "http") -> ErrorInfo:
    """Classify connection/network errors raised by the HTTP client."""
    error_str = str(error).lower()
    exception_type = type(error).__name__

    if "timeout" in error_str or "timeout" in exception_type.lower():
        kind, code = ErrorKind.TIMEOUT, "CONN_TIMEOUT"
    elif "connection refused" in error_str:
        kind, code = ErrorKind.CONNECTION, "CONN_REFUSED"
    elif "dns" in error_str or "resolve" in error_str or "name or service not known" in error_str:
        kind, code = ErrorKind.CONNECTION, "DNS_ERROR"
    else:
        kind, code = ErrorKind.CONNECTION, "CONN_ERROR"

    return ErrorInfo(
        kind=kind,
        retryable=True,
        code=code,
        message=str(error) or exception_type,
        source=source,
        exception_type=exception_type,
    )


def classify_exception(error: Exception) -> ErrorInfo:
    """ErrorInfo for any exception escaping a task invocation."""
    if isinstance(error, TaskError):
        return error.info
    # httpx transport failures all derive from httpx.TransportError
    if isinstance(error, httpx.TransportError):
        return classify_connection_error(error)
    return ErrorInfo(
        kind=ErrorKind.UNKNOWN,
        retryable=False,
        code="UNKNOWN",
        message=str(error) or type(error).__name__,
        source="graphql",
        exception_type=type(error).__name__,
    )
