"""Request dispatcher: normalize, resolve, run middleware, invoke, negotiate.

The only component that turns exceptions into responses. ``handle()``
never raises: routing misses become 404s, ``HTTPError`` subclasses map
to their own status, and everything else becomes a 500 whose message is
only shown with ``debug`` on.
"""

import inspect
import logging
from collections.abc import Callable, Iterable, Mapping
from functools import partial
from typing import Any

from portcullis.config import AppConfig
from portcullis.context import api_var, get_request_id, request_var, route_var
from portcullis.errors import HTTPError, HandlerExecutionError, PortcullisError, RoutingError
from portcullis.http.headers import Headers
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Middleware, Next
from portcullis.middleware.registry import MiddlewareRegistry
from portcullis.routing.pattern import normalize_path
from portcullis.routing.route import Action, Route
from portcullis.routing.router import Router
from portcullis.server.controllers import ControllerRegistry
from portcullis.server.errors import handle_http_error, handle_internal_error
from portcullis.server.negotiation import is_api_request, negotiate

logger = logging.getLogger("portcullis.server")


def _wants_request(func: Callable[..., Any], path_params: Iterable[str]) -> bool:
    try:
        params = inspect.signature(func).parameters
    except (TypeError, ValueError):
        return False
    return "request" in params and "request" not in set(path_params)


class Dispatcher:
    """Routes requests through global middleware, route middleware and handlers.

    Built once by ``App`` after the route table is compiled. Every route's
    middleware chain is composed up front, so unknown middleware surfaces
    at start-up rather than on the first matching request.
    """

    __slots__ = ("_chains", "_config", "_controllers", "_pipeline", "_router", "_wants_request")

    def __init__(
        self,
        *,
        router: Router,
        middleware: MiddlewareRegistry,
        controllers: ControllerRegistry,
        config: AppConfig,
        global_middleware: tuple[Middleware, ...] = (),
    ) -> None:
        self._router = router
        self._controllers = controllers
        self._config = config
        self._wants_request: dict[int, bool] = {}

        self._chains: dict[int, Next] = {}
        for route in router.routes:
            endpoint = partial(self._invoke, route)
            self._chains[id(route)] = middleware.wrap(route.middleware, endpoint)

        handler: Next = self._route
        for mw in reversed(global_middleware):

            def make_next(
                request: Request, _mw: Middleware = mw, _next: Next = handler
            ) -> Response:
                try:
                    return negotiate(_mw(request, _next))
                except Exception as exc:
                    return self._error_response(exc, request)

            handler = make_next
        self._pipeline = handler

    # -- Entry points --

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
        """Dispatch one request described by plain values."""
        request = Request.build(method, path, headers, body=body, query=query, client=client)
        return self.dispatch(request)

    def dispatch(self, request: Request) -> Response:
        """Run *request* through the full pipeline. Never raises."""
        if request.path != normalize_path(request.path):
            request = Request.build(
                request.method,
                normalize_path(request.path),
                request.headers,
                body=request.body,
                query=request._cache.get("_query_string", ""),
                client=request.client,
            )

        request_token = request_var.set(request)
        route_token = route_var.set(None)
        api_token = api_var.set(False)
        try:
            return self._pipeline(request)
        except Exception as exc:
            return self._error_response(exc, request)
        finally:
            api_var.reset(api_token)
            route_var.reset(route_token)
            request_var.reset(request_token)

    # -- Pipeline stages --

    def _route(self, request: Request) -> Response:
        """Innermost stage of the global chain: resolve and run the route."""
        try:
            match = self._router.resolve(request.method, request.path)
            if match is None:
                allowed = self._router.allowed_methods(request.path)
                if allowed:
                    logger.debug(
                        "No %s route for %s (registered: %s)",
                        request.method,
                        request.path,
                        ", ".join(sorted(allowed)),
                    )
                raise RoutingError(f"Route not found: {request.method} {request.path}")

            route_var.set(match)
            request = request.with_path_params(match.path_params)
            request_var.set(request)
            return self._chains[id(match.route)](request)
        except Exception as exc:
            return self._error_response(exc, request)

    def _error_response(self, exc: Exception, request: Request) -> Response:
        """Turn *exc* into a response: its own status for ``HTTPError``, else 500."""
        api = is_api_request(request, self._config.api_prefix)
        if isinstance(exc, HTTPError):
            return handle_http_error(exc, request, api=api, request_id=get_request_id())
        return handle_internal_error(
            exc, request, api=api, debug=self._config.debug, request_id=get_request_id()
        )

    def _invoke(self, route: Route, request: Request) -> Response:
        """Call the route handler and negotiate its return value."""
        handler = route.handler
        try:
            if isinstance(handler, Action):
                result = self._controllers.call(handler, request, request.path_params)
            else:
                key = id(handler)
                wants = self._wants_request.get(key)
                if wants is None:
                    wants = _wants_request(handler, route.param_names)
                    self._wants_request[key] = wants
                args = tuple(request.path_params.values())
                result = handler(*args, request=request) if wants else handler(*args)
        except PortcullisError:
            raise
        except Exception as exc:
            raise HandlerExecutionError(exc) from exc
        return negotiate(result)
