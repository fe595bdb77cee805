"""Portcullis: request dispatch and security for back-office web apps.

Ordered route table with groups, named middleware, controller binding,
and a security service for CSRF, sessions, rate limits and audit events.

Basic usage::

    from portcullis import App, AppConfig

    app = App(AppConfig(secret_key="..."))

    app.get("/users/{id}", "UserController@show")

    def admin(r):
        r.get("dashboard", "DashboardController@index")

    app.group({"prefix": "admin", "middleware": ["auth", "admin"]}, admin)

Serve with any WSGI server (``app`` is the WSGI callable).
"""

__version__ = "0.1.0"
__all__ = [
    "Action",
    "App",
    "AppConfig",
    "AuthorizationError",
    "ConfigurationError",
    "HTTPError",
    "Middleware",
    "Next",
    "NotFound",
    "PortcullisError",
    "RateLimitExceeded",
    "Redirect",
    "Request",
    "Response",
    "SecurityConfig",
    "SessionConfig",
    "ValidationError",
    "get_request",
    "get_session",
    "login",
    "logout",
]


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import portcullis`` fast while providing a clean top-level API.
    """
    if name == "App":
        from portcullis.app import App

        return App

    if name in ("AppConfig", "SecurityConfig", "SessionConfig"):
        from portcullis import config as _config

        return getattr(_config, name)

    if name == "Request":
        from portcullis.http.request import Request

        return Request

    if name in ("Response", "Redirect"):
        from portcullis.http import response as _resp

        return getattr(_resp, name)

    if name == "Action":
        from portcullis.routing.route import Action

        return Action

    if name in ("Middleware", "Next"):
        from portcullis.middleware import protocol as _mw

        return getattr(_mw, name)

    if name in ("login", "logout"):
        from portcullis.middleware import sessions as _sessions

        return getattr(_sessions, name)

    if name in ("get_request", "get_session"):
        from portcullis import context as _ctx

        return getattr(_ctx, name)

    if name in (
        "AuthorizationError",
        "ConfigurationError",
        "HTTPError",
        "NotFound",
        "PortcullisError",
        "RateLimitExceeded",
        "ValidationError",
    ):
        from portcullis import errors as _errors

        return getattr(_errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
