"""Session middleware: server-side sessions behind a signed id cookie.

The cookie value is the session id signed with ``itsdangerous``; the
session record itself lives in the ``SessionStore`` owned by the
``SecurityService``. Each request loads (or starts) the session, runs it
through ``harden_session`` for id rotation, exposes it via
``get_session()``, and writes the cookie back on the way out.
"""

from contextvars import ContextVar

from itsdangerous import BadSignature, URLSafeSerializer

from portcullis.config import AppConfig
from portcullis.context import get_request, get_session, session_var
from portcullis.errors import ConfigurationError
from portcullis.http.cookies import SetCookie
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Next
from portcullis.security.service import SecurityService
from portcullis.security.sessions import Session

_SALT = "portcullis.session"

_active_security: ContextVar[SecurityService | None] = ContextVar(
    "portcullis_security", default=None
)


def _security() -> SecurityService:
    security = _active_security.get()
    if security is None:
        msg = "No active SessionMiddleware for this request."
        raise LookupError(msg)
    return security


def login(user_id: str, role: str | None = None) -> Session:
    """Sign *user_id* in on the current session.

    The session id is regenerated and a new CSRF token issued; the new
    cookie is written on the response::

        @app.post("/login")
        def do_login(request):
            user = users.authenticate(...)
            login(user.id, user.role)
            return Redirect("/dashboard")
    """
    session = _security().login(get_session(), user_id, role, request=get_request())
    session_var.set(session)
    return session


def logout() -> Session:
    """Destroy the current session and continue with a fresh anonymous one."""
    session = _security().logout(get_session(), request=get_request())
    session_var.set(session)
    return session


class SessionMiddleware:
    """Load, harden and persist the session around every request.

    Usage::

        app.add_middleware(SessionMiddleware(config, security))

        # In a handler:
        from portcullis.context import get_session

        def dashboard():
            session = get_session()
            session["visits"] = session.get("visits", 0) + 1
    """

    __slots__ = ("_config", "_security", "_serializer")

    def __init__(self, config: AppConfig, security: SecurityService) -> None:
        if not config.secret_key:
            msg = "AppConfig.secret_key must not be empty when sessions are enabled."
            raise ConfigurationError(msg)
        self._config = config
        self._security = security
        self._serializer = URLSafeSerializer(config.secret_key, salt=_SALT)

    def _session_id(self, request: Request) -> str | None:
        raw = request.cookies.get(self._config.session.cookie_name)
        if not raw:
            return None
        try:
            value = self._serializer.loads(raw)
        except BadSignature:
            return None
        return value if isinstance(value, str) else None

    def _load(self, request: Request) -> Session:
        session = self._security.load_session(self._session_id(request))
        if session is None:
            return self._security.start_session()
        return self._security.harden_session(session)

    def _cookie(self, session: Session) -> SetCookie:
        cfg = self._config.session
        return SetCookie(
            name=cfg.cookie_name,
            value=self._serializer.dumps(session.id),
            max_age=cfg.max_age,
            path=cfg.path,
            domain=cfg.domain,
            secure=cfg.secure,
            httponly=cfg.httponly,
            samesite=cfg.samesite,
        )

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        token = session_var.set(self._load(request))
        security_token = _active_security.set(self._security)
        try:
            response = next(request)
            session = session_var.get()
        finally:
            _active_security.reset(security_token)
            session_var.reset(token)

        if session is None:
            return response
        self._security.sessions.save(session)
        return response.with_cookie(self._cookie(session))
