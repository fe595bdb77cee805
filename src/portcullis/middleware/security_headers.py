"""Security headers middleware.

Adds clickjacking, MIME-sniffing, referrer and content-security headers
to every response. It runs outermost in the global chain, so 404s and
error pages carry the headers as well.

A header the handler (or an inner middleware) already set is left
alone, which lets a single route relax its own Content-Security-Policy.
"""

from collections.abc import Mapping

from portcullis.config import DEFAULT_SECURITY_HEADERS
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Next


class SecurityHeadersMiddleware:
    """Add the configured security headers to every response.

    Usage::

        app = App(AppConfig(security=SecurityConfig(headers={
            **DEFAULT_SECURITY_HEADERS,
            "X-Frame-Options": "SAMEORIGIN",
        })))

    The app installs this middleware itself; the map comes from
    ``SecurityConfig.headers``.
    """

    __slots__ = ("headers",)

    def __init__(self, headers: Mapping[str, str] | None = None) -> None:
        source = DEFAULT_SECURITY_HEADERS if headers is None else headers
        self.headers: tuple[tuple[str, str], ...] = tuple(
            (name, value) for name, value in source.items() if value
        )

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        response = next(request)
        missing = tuple(
            (name, value) for name, value in self.headers if response.header(name) is None
        )
        if not missing:
            return response
        return response.with_headers(missing)
