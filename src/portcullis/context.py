"""Request-scoped context via ContextVar.

Provides:
- ``request_var``: the current ``Request``.
- ``request_id_var``: the id echoed as ``X-Request-ID``.
- ``session_var``: the loaded ``Session``.
- ``route_var``: the ``RouteMatch`` being dispatched (unset before routing).
- ``api_var``: whether this request gets the JSON envelope.

All are set by the dispatcher or global middleware and reset after each
request. Dispatch is synchronous, so a value set inside a handler is
visible to the middleware wrapping it until that middleware resets it.
"""

from contextvars import ContextVar

from portcullis.http.request import Request
from portcullis.routing.route import RouteMatch
from portcullis.security.sessions import Session

request_var: ContextVar[Request] = ContextVar("portcullis_request")
"""The current request. Set by the dispatcher before global middleware runs."""

request_id_var: ContextVar[str | None] = ContextVar("portcullis_request_id", default=None)

session_var: ContextVar[Session | None] = ContextVar("portcullis_session", default=None)

route_var: ContextVar[RouteMatch | None] = ContextVar("portcullis_route", default=None)

api_var: ContextVar[bool] = ContextVar("portcullis_api", default=False)


def get_request() -> Request:
    """Return the current request.

    Raises ``LookupError`` if called outside a request context.
    """
    return request_var.get()


def get_request_id() -> str | None:
    return request_id_var.get()


def get_session() -> Session:
    """Return the current session.

    Raises ``LookupError`` if called outside a request with
    ``SessionMiddleware`` active.
    """
    session = session_var.get()
    if session is None:
        msg = (
            "No active session. Ensure SessionMiddleware is added "
            "to the app before accessing the session."
        )
        raise LookupError(msg)
    return session


def get_route() -> RouteMatch | None:
    """The matched route, or ``None`` before routing or on a 404."""
    return route_var.get()


def mark_api() -> None:
    """Force the JSON envelope for the rest of this request."""
    api_var.set(True)
