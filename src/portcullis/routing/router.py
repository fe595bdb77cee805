"""Ordered route table with scoped group registration.

Routes are registered during setup and frozen by ``compile()``.
Matching is first-registered, first-matched: the first route whose
method and pattern both match wins. There is no specificity ranking.
"""

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from portcullis.errors import ConfigurationError
from portcullis.routing.pattern import compile_template, normalize_path
from portcullis.routing.route import METHODS, Action, Handler, Route, RouteMatch


@dataclass(frozen=True, slots=True)
class GroupFrame:
    """Attributes inherited by routes registered inside a group."""

    prefix: str = ""
    middleware: tuple[str, ...] = ()
    attributes: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))


def _join_prefix(current: str, prefix: str) -> str:
    return f"{current.strip('/')}/{prefix.strip('/')}".strip("/")


def _as_tuple(value: str | Iterable[str] | None) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


class Router:
    """Ordered route table.

    Usage::

        router = Router()
        router.get("/users/{id}", show_user, name="users.show")

        def admin(r: Router) -> None:
            r.get("dashboard", "DashboardController@index")

        router.group({"prefix": "admin", "middleware": ["auth"]}, admin)
        router.compile()

        match = router.resolve("GET", "/admin/dashboard")
    """

    __slots__ = ("_compiled", "_frames", "_named", "_routes")

    def __init__(self) -> None:
        self._routes: list[Route] = []
        self._named: dict[str, Route] = {}
        self._frames: list[GroupFrame] = [GroupFrame()]
        self._compiled = False

    # -- Registration --

    @property
    def current_frame(self) -> GroupFrame:
        """The frame applied to routes registered right now."""
        return self._frames[-1]

    def register(
        self,
        method: str,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a route under the current group frame.

        The frame's prefix and middleware are copied into the route now;
        later group changes never reach it.
        """
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        method = method.upper()
        if method not in METHODS:
            msg = f"Unsupported HTTP method {method!r}; expected one of {', '.join(METHODS)}."
            raise ConfigurationError(msg)

        if isinstance(handler, str):
            handler = Action.parse(handler)
        elif not isinstance(handler, Action) and not callable(handler):
            msg = f"Route handler for {template!r} must be callable or 'Controller@method'."
            raise ConfigurationError(msg)

        frame = self.current_frame
        if frame.prefix:
            path = "/" + _join_prefix(frame.prefix, template)
        else:
            path = template
        path = normalize_path(path)

        route = Route(
            method=method,
            path=path,
            handler=handler,
            pattern=compile_template(path),
            name=name,
            middleware=frame.middleware + _as_tuple(middleware),
        )
        self._routes.append(route)
        if name is not None:
            self._named.setdefault(name, route)
        return route

    def get(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a GET route."""
        return self.register("GET", template, handler, name, middleware)

    def post(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a POST route."""
        return self.register("POST", template, handler, name, middleware)

    def put(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a PUT route."""
        return self.register("PUT", template, handler, name, middleware)

    def delete(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a DELETE route."""
        return self.register("DELETE", template, handler, name, middleware)

    def patch(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> Route:
        """Register a PATCH route."""
        return self.register("PATCH", template, handler, name, middleware)

    def any(
        self,
        template: str,
        handler: Handler | str,
        name: str | None = None,
        middleware: str | Iterable[str] | None = None,
    ) -> list[Route]:
        """Register the same handler for every supported method."""
        return [self.register(m, template, handler, name, middleware) for m in METHODS]

    def group(self, attributes: Mapping[str, Any], callback: Callable[["Router"], Any]) -> None:
        """Run *callback* with a prefix/middleware frame pushed.

        ``prefix`` is joined onto the enclosing prefix and ``middleware``
        (a string or a list) is appended to the enclosing list. Any other
        keys are merged into the frame's attributes. The previous frame is
        restored when the callback returns or raises.
        """
        previous = self.current_frame

        prefix = previous.prefix
        if attributes.get("prefix"):
            prefix = _join_prefix(previous.prefix, attributes["prefix"])

        merged = {**previous.attributes, **attributes}
        frame = GroupFrame(
            prefix=prefix,
            middleware=previous.middleware + _as_tuple(attributes.get("middleware")),
            attributes=MappingProxyType(merged),
        )

        self._frames.append(frame)
        try:
            callback(self)
        finally:
            self._frames.pop()

    def compile(self) -> None:
        """Freeze the table. No more routes can be added."""
        if len(self._frames) != 1:
            msg = "Cannot compile the route table from inside a group callback."
            raise RuntimeError(msg)
        self._compiled = True

    # -- Lookup --

    @property
    def routes(self) -> tuple[Route, ...]:
        """All registered routes in registration order."""
        return tuple(self._routes)

    def resolve(self, method: str, path: str) -> RouteMatch | None:
        """Return the first route matching *method* and *path*, or ``None``."""
        method = method.upper()
        path = normalize_path(path)
        for route in self._routes:
            if route.method != method:
                continue
            values = route.pattern.match(path)
            if values is not None:
                params = dict(zip(route.param_names, values, strict=True))
                return RouteMatch(route=route, path_params=params)
        return None

    def allowed_methods(self, path: str) -> frozenset[str]:
        """Methods with a route matching *path*."""
        path = normalize_path(path)
        return frozenset(r.method for r in self._routes if r.pattern.match(path) is not None)

    def url_for(self, name: str, **params: Any) -> str:
        """Build the path of a named route.

        Raises ``KeyError`` for unknown names and ``ConfigurationError``
        when a placeholder has no value.
        """
        route = self._named[name]
        path = route.path
        for param in route.param_names:
            if param not in params:
                msg = f"Missing value for {{{param}}} when building URL for route {name!r}."
                raise ConfigurationError(msg)
            path = path.replace(f"{{{param}}}", str(params[param]))
        return path
