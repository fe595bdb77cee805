"""Portcullis exception hierarchy.

Shared across Router, Dispatcher, middleware and the security service so
every module raises and catches the same types. The dispatcher is the
only place these are turned into responses.
"""

from dataclasses import dataclass, field
from typing import Any


class PortcullisError(Exception):
    """Base for all portcullis-specific errors."""


class ConfigurationError(PortcullisError):
    """Raised when routes, middleware or config are invalid.

    Typically raised at registration time or during ``App._freeze()``.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PortcullisError):
    """An error that maps directly to an HTTP status code.

    ``code`` is the machine-readable error code used in the JSON
    envelope; ``details`` is an optional structured payload.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()
    code: str = "HTTP_ERROR"
    details: dict[str, Any] | None = field(default=None)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class RoutingError(HTTPError):
    """404: no route matched the request."""

    def __init__(self, detail: str = "Route not found") -> None:
        super().__init__(status=404, detail=detail, code="ROUTE_NOT_FOUND")


NotFound = RoutingError


class AuthorizationError(HTTPError):
    """401/403: a middleware rejected the request."""

    def __init__(
        self,
        status: int = 401,
        detail: str = "Authentication required",
        *,
        code: str = "AUTHENTICATION_REQUIRED",
        headers: tuple[tuple[str, str], ...] = (),
    ) -> None:
        super().__init__(status=status, detail=detail, headers=headers, code=code)


class ValidationError(HTTPError):  # noqa: N818
    """422: raised by handlers when submitted input is invalid."""

    def __init__(
        self,
        detail: str = "The given data was invalid.",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(status=422, detail=detail, code="VALIDATION_FAILED", details=details)


class CsrfError(HTTPError):
    """403: CSRF token missing, expired or mismatched."""

    def __init__(self, detail: str = "CSRF token validation failed") -> None:
        super().__init__(status=403, detail=detail, code="CSRF_TOKEN_INVALID")


class RateLimitExceeded(HTTPError):  # noqa: N818
    """429: caller exceeded a rate-limit window."""

    def __init__(
        self, retry_after: int, detail: str = "Too many requests. Please try again later."
    ) -> None:
        super().__init__(
            status=429,
            detail=detail,
            code="RATE_LIMIT_EXCEEDED",
            headers=(("Retry-After", str(retry_after)),),
            details={"retry_after": retry_after},
        )

    @property
    def retry_after(self) -> int:
        return int(dict(self.headers)["Retry-After"])


class HandlerResolutionError(PortcullisError):
    """A route's controller class or method could not be found.

    Always a programming error; surfaces as a 500.
    """


class HandlerExecutionError(PortcullisError):
    """Wraps an unexpected exception raised by a handler or middleware."""

    def __init__(self, original: BaseException) -> None:
        super().__init__(str(original))
        self.original = original
