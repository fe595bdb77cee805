"""Named middleware and identifier parsing.

Routes name their middleware by identifier. The part before the first
colon is the registered name, the rest is a comma-separated argument
list::

    "auth"              -> ("auth", ())
    "role:admin,editor" -> ("role", ("admin", "editor"))
    "throttle:5,300"    -> ("throttle", ("5", "300"))
"""

from collections.abc import Iterable, Iterator

from portcullis.errors import ConfigurationError
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Middleware, Next
from portcullis.server.negotiation import negotiate


def parse_identifier(identifier: str) -> tuple[str, tuple[str, ...]]:
    """Split a middleware identifier into name and arguments."""
    name, _, raw = identifier.partition(":")
    args = tuple(a.strip() for a in raw.split(",") if a.strip()) if raw else ()
    return name.strip(), args


class MiddlewareRegistry:
    """Maps middleware names to callables.

    Usage::

        registry = MiddlewareRegistry()
        registry.register("audit", audit_middleware)
        registry.validate(["auth", "audit"])  # ConfigurationError if unknown
        handler = registry.wrap(("auth", "role:admin"), endpoint)
    """

    __slots__ = ("_middleware",)

    def __init__(self) -> None:
        self._middleware: dict[str, Middleware] = {}

    def register(self, name: str, middleware: Middleware) -> None:
        if not name or ":" in name:
            msg = f"Invalid middleware name {name!r}."
            raise ConfigurationError(msg)
        if not callable(middleware):
            msg = f"Middleware {name!r} must be callable."
            raise ConfigurationError(msg)
        self._middleware[name] = middleware

    def __contains__(self, name: object) -> bool:
        return name in self._middleware

    def __iter__(self) -> Iterator[str]:
        return iter(self._middleware)

    def __len__(self) -> int:
        return len(self._middleware)

    def get(self, identifier: str) -> tuple[Middleware, tuple[str, ...]]:
        """Look up an identifier; raises ``ConfigurationError`` if unknown."""
        name, args = parse_identifier(identifier)
        try:
            return self._middleware[name], args
        except KeyError:
            known = ", ".join(sorted(self)) or "none"
            msg = f"Unknown middleware {identifier!r}. Registered: {known}."
            raise ConfigurationError(msg) from None

    def validate(self, identifiers: Iterable[str]) -> None:
        """Check every identifier now rather than on the first matching request.

        Middleware exposing ``check_args(*args)`` also get their arguments
        checked.
        """
        for identifier in identifiers:
            mw, args = self.get(identifier)
            check = getattr(mw, "check_args", None)
            if check is not None:
                check(*args)

    def wrap(self, identifiers: Iterable[str], endpoint: Next) -> Next:
        """Compose *identifiers* around *endpoint*, first one outermost."""
        handler = endpoint
        for identifier in reversed(tuple(identifiers)):
            mw, args = self.get(identifier)

            def make_next(
                request: Request,
                _mw: Middleware = mw,
                _next: Next = handler,
                _args: tuple[str, ...] = args,
            ) -> Response:
                return negotiate(_mw(request, _next, *_args))

            handler = make_next
        return handler
