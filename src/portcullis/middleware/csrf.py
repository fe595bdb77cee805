"""CSRF protection middleware: token-based, session-backed.

On state-changing requests (POST, PUT, PATCH, DELETE) the submitted token
is read from the ``_token`` form field or the ``X-CSRF-Token`` header
and checked by ``SecurityService.validate_csrf_token``. Requests under
the API prefix that carry an ``Authorization`` header are exempt.

Requires ``SessionMiddleware``: the token lives on the session.

Templates::

    <form method="post">
        {{ csrf_field() }}
        ...
    </form>
"""

from portcullis.config import AppConfig
from portcullis.context import get_session, session_var
from portcullis.errors import CsrfError
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Next
from portcullis.security.service import SecurityService

_UNSAFE_METHODS: frozenset[str] = frozenset({"POST", "PUT", "PATCH", "DELETE"})


class CsrfMiddleware:
    """``csrf``: validate the session's CSRF token on unsafe methods."""

    __slots__ = ("_config", "_security")

    def __init__(self, config: AppConfig, security: SecurityService) -> None:
        self._config = config
        self._security = security

    def _is_exempt(self, request: Request) -> bool:
        prefix = self._config.api_prefix.rstrip("/")
        under_api = bool(prefix) and request.path.startswith(prefix + "/")
        return under_api and bool(request.headers.get("authorization"))

    def _submitted_token(self, request: Request) -> str | None:
        sec = self._config.security
        token = request.form().get(sec.csrf_field)
        if token:
            return token
        return request.headers.get(sec.csrf_header)

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        session = session_var.get()
        if request.method not in _UNSAFE_METHODS or self._is_exempt(request):
            if session is not None:
                self._security.csrf_token(session)
            return next(request)

        if not self._security.validate_csrf_token(session, self._submitted_token(request)):
            self._security.log_security_event(
                "csrf.reject",
                {"path": request.path, "method": request.method},
                request=request,
                session=session,
            )
            raise CsrfError()
        return next(request)


def get_csrf_token() -> str:
    """The current session's CSRF token.

    Raises ``LookupError`` outside a request with a session.
    """
    token = get_session().csrf_token
    if token is None:
        msg = "No CSRF token issued for this session yet."
        raise LookupError(msg)
    return token


def csrf_field(field_name: str = "_token") -> str:
    """A hidden input carrying the CSRF token, safe to drop into a template."""
    from kida.utils.html import Markup

    return Markup(f'<input type="hidden" name="{field_name}" value="{get_csrf_token()}">')
