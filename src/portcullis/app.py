"""Portcullis application class.

Mutable during setup (routes, groups, controllers, middleware).
Frozen on the first request: the route table is compiled, every route's
middleware is checked, and the dispatcher is built.
"""

import logging
import secrets
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import replace
from typing import Any

from portcullis.config import AppConfig
from portcullis.http.headers import Headers
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.builtins import register_builtins
from portcullis.middleware.protocol import Middleware
from portcullis.middleware.registry import MiddlewareRegistry
from portcullis.middleware.request_id import request_id_middleware
from portcullis.middleware.security_headers import SecurityHeadersMiddleware
from portcullis.middleware.sessions import SessionMiddleware
from portcullis.routing.route import Handler, Route
from portcullis.routing.router import Router
from portcullis.security.audit import SecurityEventSink
from portcullis.security.rate_limit import RateLimitStore
from portcullis.security.service import SecurityService
from portcullis.security.sessions import SessionStore
from portcullis.server.controllers import ControllerRegistry
from portcullis.server.handler import Dispatcher

logger = logging.getLogger("portcullis.app")

type StartResponse = Callable[[str, list[tuple[str, str]]], Any]


class App:
    """The portcullis application.

    Usage::

        app = App(AppConfig(secret_key="..."))

        app.get("/", home)
        app.get("/users/{id}", "UserController@show", name="users.show")

        def admin(r):
            r.get("dashboard", "DashboardController@index")

        app.group({"prefix": "admin", "middleware": ["auth", "admin"]}, admin)

        @app.controller
        class UserController:
            def show(self, id):
                return {"id": id}

    Thread safety:
        Setup is single-threaded. The freeze transition uses a Lock plus a
        double check so exactly one thread compiles the app, even when
        several WSGI worker threads take their first request together.
    """

    __slots__ = (
        "_controllers",
        "_dispatcher",
        "_freeze_lock",
        "_frozen",
        "_global_middleware",
        "_middleware",
        "config",
        "router",
        "security",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        sessions: SessionStore | None = None,
        rate_limits: RateLimitStore | None = None,
        security_sink: SecurityEventSink | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        config = config or AppConfig()
        if not config.secret_key:
            logger.warning(
                "No secret_key configured; using a random one. "
                "Sessions will not survive a restart or span processes."
            )
            config = replace(config, secret_key=secrets.token_hex(32))
        self.config: AppConfig = config

        service_kwargs: dict[str, Any] = {}
        if clock is not None:
            service_kwargs["clock"] = clock
        self.security = SecurityService(
            config.security,
            session_config=config.session,
            sessions=sessions,
            rate_limits=rate_limits,
            sink=security_sink,
            **service_kwargs,
        )

        self.router = Router()
        self._middleware = MiddlewareRegistry()
        self._controllers = ControllerRegistry()
        self._global_middleware: list[Middleware] = []
        self._dispatcher: Dispatcher | None = None
        self._frozen = False
        self._freeze_lock = threading.Lock()

    # -- Route registration --

    def get(self, template: str, handler: Handler | str, **kwargs: Any) -> Route:
        self._check_not_frozen()
        return self.router.get(template, handler, **kwargs)

    def post(self, template: str, handler: Handler | str, **kwargs: Any) -> Route:
        self._check_not_frozen()
        return self.router.post(template, handler, **kwargs)

    def put(self, template: str, handler: Handler | str, **kwargs: Any) -> Route:
        self._check_not_frozen()
        return self.router.put(template, handler, **kwargs)

    def delete(self, template: str, handler: Handler | str, **kwargs: Any) -> Route:
        self._check_not_frozen()
        return self.router.delete(template, handler, **kwargs)

    def patch(self, template: str, handler: Handler | str, **kwargs: Any) -> Route:
        self._check_not_frozen()
        return self.router.patch(template, handler, **kwargs)

    def any(self, template: str, handler: Handler | str, **kwargs: Any) -> list[Route]:
        self._check_not_frozen()
        return self.router.any(template, handler, **kwargs)

    def group(self, attributes: Mapping[str, Any], callback: Callable[[Router], Any]) -> None:
        """Register routes sharing a prefix and middleware. See ``Router.group``."""
        self._check_not_frozen()
        self.router.group(attributes, callback)

    def route(
        self,
        path: str,
        *,
        methods: Iterable[str] | None = None,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a function handler via decorator.

        Args:
            path: URL template. Use ``{param}`` for path parameters.
            methods: HTTP methods. Defaults to ``["GET"]``.
            name: Optional route name for ``url_for``.
            middleware: Identifiers added after the enclosing group's.
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self._check_not_frozen()
            for method in methods or ("GET",):
                self.router.register(method, path, func, name, middleware)
            return func

        return decorator

    def url_for(self, name: str, **params: Any) -> str:
        return self.router.url_for(name, **params)

    # -- Controllers and middleware --

    def controller(self, name_or_cls: str | type, factory: Callable[[], Any] | None = None) -> Any:
        """Register a controller class.

        Works directly, with an explicit name, or as a decorator::

            app.controller(UserController)
            app.controller("Admin.Users", AdminUsers)

            @app.controller
            class ReportController: ...

            @app.controller("Reports")
            class ReportController: ...
        """
        self._check_not_frozen()
        if isinstance(name_or_cls, str) and factory is None:

            def decorator(cls: type) -> type:
                self._controllers.register(name_or_cls, cls)
                return cls

            return decorator

        self._controllers.register(name_or_cls, factory)
        return name_or_cls if factory is None else factory

    def middleware(self, name: str) -> Callable[[Middleware], Middleware]:
        """Register named route middleware via decorator::

            @app.middleware("audit")
            def audit(request, next):
                response = next(request)
                ...
                return response
        """

        def decorator(func: Middleware) -> Middleware:
            self._check_not_frozen()
            self._middleware.register(name, func)
            return func

        return decorator

    def add_middleware(self, middleware: Middleware) -> None:
        """Add global middleware, run for every request including 404s."""
        self._check_not_frozen()
        self._global_middleware.append(middleware)

    # -- Serving --

    def handle(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str] | Headers | None = None,
        *,
        body: bytes = b"",
        query: str = "",
        client: tuple[str, int] | None = None,
    ) -> Response:
        """Dispatch one request.

        Request failures always become responses. The first call compiles
        the app and raises ``ConfigurationError`` for unknown middleware;
        call ``freeze()`` at start-up to surface that early.
        """
        return self._ensure_frozen().handle(
            method, path, headers, body=body, query=query, client=client
        )

    def dispatch(self, request: Request) -> Response:
        return self._ensure_frozen().dispatch(request)

    def __call__(self, environ: dict[str, Any], start_response: StartResponse) -> list[bytes]:
        """WSGI entry point."""
        response = self.dispatch(Request.from_wsgi(environ))
        start_response(response.status_line, response.wsgi_headers())
        return [response.body_bytes]

    # -- Internal --

    def _ensure_frozen(self) -> Dispatcher:
        """Thread-safe freeze with double-check locking."""
        if self._dispatcher is not None:
            return self._dispatcher
        with self._freeze_lock:
            if self._dispatcher is None:
                self._freeze()
            assert self._dispatcher is not None
            return self._dispatcher

    def _freeze(self) -> None:
        """Compile the app into its runtime state.

        MUST only be called while holding _freeze_lock.
        """
        register_builtins(self._middleware, self.config, self.security)
        for route in self.router.routes:
            self._middleware.validate(route.middleware)
        self.router.compile()

        global_middleware = (
            SecurityHeadersMiddleware(self.config.security.headers),
            request_id_middleware,
            SessionMiddleware(self.config, self.security),
            *self._global_middleware,
        )
        self._dispatcher = Dispatcher(
            router=self.router,
            middleware=self._middleware,
            controllers=self._controllers,
            config=self.config,
            global_middleware=global_middleware,
        )
        self._frozen = True
        logger.debug("Compiled %d routes", len(self.router.routes))

    def freeze(self) -> None:
        """Compile now instead of on the first request.

        Raises ``ConfigurationError`` for unknown middleware.
        """
        self._ensure_frozen()

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Register routes, controllers and middleware before the first request."
            )
            raise RuntimeError(msg)
