"""Access-control middleware: ``auth``, ``role``, ``admin``, ``guest``, ``api``.

All of them read the principal from the session loaded by
``SessionMiddleware``. Browsers are redirected; API requests get a JSON
error envelope through the normal error pipeline.
"""

import logging
from urllib.parse import quote

from portcullis.config import AppConfig
from portcullis.context import mark_api, session_var
from portcullis.errors import AuthorizationError, ConfigurationError
from portcullis.http.request import Request
from portcullis.http.response import Redirect, Response
from portcullis.middleware.protocol import Next
from portcullis.security.service import SecurityService
from portcullis.server.negotiation import is_api_request, redirect_response

logger = logging.getLogger("portcullis.security")


def login_redirect(request: Request, login_url: str) -> Response:
    """Redirect to *login_url* carrying the current URL as ``next``."""
    separator = "&" if "?" in login_url else "?"
    url = f"{login_url}{separator}next={quote(request.url, safe='')}"
    return redirect_response(Redirect(url))


class RequireAuth:
    """``auth``: reject anonymous sessions.

    API requests get 401 ``AUTHENTICATION_REQUIRED``; browsers are sent to
    ``login_url`` (or get the 401 page when no login URL is configured).
    """

    __slots__ = ("_config", "_security")

    def __init__(self, config: AppConfig, security: SecurityService) -> None:
        self._config = config
        self._security = security

    def reject(self, request: Request) -> Response:
        session = session_var.get()
        self._security.log_security_event(
            "auth.require.unauthenticated",
            {"path": request.path, "method": request.method},
            request=request,
            session=session,
        )
        if is_api_request(request, self._config.api_prefix) or not self._config.login_url:
            raise AuthorizationError()
        return login_redirect(request, self._config.login_url)

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        session = session_var.get()
        if session is None or not session.is_authenticated:
            return self.reject(request)
        return next(request)


class RequireRole:
    """``role:<r1,r2,...>``: the session role must be one of the listed roles.

    Anonymous sessions are handled exactly like ``auth``. Authenticated
    sessions without a listed role get 403 ``INSUFFICIENT_PERMISSIONS``.
    """

    __slots__ = ("_auth", "_security")

    def __init__(self, auth: RequireAuth, security: SecurityService) -> None:
        self._auth = auth
        self._security = security

    def check_args(self, *roles: str) -> None:
        if not roles:
            msg = "The role middleware needs at least one role, e.g. 'role:admin'."
            raise ConfigurationError(msg)

    def __call__(self, request: Request, next: Next, *roles: str) -> Response:
        session = session_var.get()
        if session is None or not session.is_authenticated:
            return self._auth.reject(request)
        if session.role not in roles:
            logger.warning(
                "User %s with role %s denied %s (needs one of %s)",
                session.user_id,
                session.role,
                request.path,
                ", ".join(roles),
            )
            self._security.log_security_event(
                "authz.role.denied",
                {"user_id": session.user_id, "role": session.role, "required": list(roles)},
                request=request,
                session=session,
            )
            raise AuthorizationError(
                403, "Insufficient permissions", code="INSUFFICIENT_PERMISSIONS"
            )
        return next(request)


class RequireAdmin:
    """``admin``: shorthand for ``role:admin``."""

    __slots__ = ("_role",)

    def __init__(self, role: RequireRole) -> None:
        self._role = role

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        return self._role(request, next, "admin")


class GuestOnly:
    """``guest``: signed-in users are sent to ``home_url``."""

    __slots__ = ("_config",)

    def __init__(self, config: AppConfig) -> None:
        self._config = config

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        session = session_var.get()
        if session is not None and session.is_authenticated:
            return redirect_response(Redirect(self._config.home_url))
        return next(request)


def api_only(request: Request, next: Next, *args: str) -> Response:
    """``api``: answer with the JSON envelope whatever the client accepts."""
    mark_api()
    return next(request)
