"""``throttle:<max>,<window>``: per-route, per-client rate limiting.

The window key is ``"<route name or path>_<client ip>"``, so each route
has its own budget per client. Without arguments the configured defaults
(60 requests per 60 seconds) apply.
"""

from portcullis.config import AppConfig
from portcullis.context import get_route, session_var
from portcullis.errors import ConfigurationError, RateLimitExceeded
from portcullis.http.request import Request
from portcullis.http.response import Response
from portcullis.middleware.protocol import Next
from portcullis.security.service import SecurityService


def parse_throttle_args(
    args: tuple[str, ...], default_max: int, default_window: int
) -> tuple[int, int]:
    """``("5", "300")`` -> ``(5, 300)``; missing values use the defaults."""
    try:
        max_requests = int(args[0]) if len(args) > 0 else default_max
        window = int(args[1]) if len(args) > 1 else default_window
    except ValueError:
        raw = ",".join(args)
        msg = f"Invalid throttle arguments {raw!r}; expected 'throttle:<max>,<window>'."
        raise ConfigurationError(msg) from None
    if max_requests < 1 or window < 1:
        msg = f"Throttle limits must be positive, got {max_requests} per {window}s."
        raise ConfigurationError(msg)
    return max_requests, window


class ThrottleMiddleware:
    """Reject with 429 once a client exceeds a route's window."""

    __slots__ = ("_config", "_security")

    def __init__(self, config: AppConfig, security: SecurityService) -> None:
        self._config = config
        self._security = security

    def check_args(self, *args: str) -> None:
        sec = self._config.security
        parse_throttle_args(args, sec.rate_limit_requests, sec.rate_limit_window)

    def key_for(self, request: Request) -> str:
        match = get_route()
        scope = request.path
        if match is not None:
            scope = match.route.name or match.route.path
        return f"{scope}_{self._security.resolve_client_ip(request)}"

    def __call__(self, request: Request, next: Next, *args: str) -> Response:
        sec = self._config.security
        max_requests, window = parse_throttle_args(
            args, sec.rate_limit_requests, sec.rate_limit_window
        )
        key = self.key_for(request)
        if not self._security.check_rate_limit(key, max_requests, window):
            self._security.log_security_event(
                "rate_limit.exceeded",
                {"key": key, "max_requests": max_requests, "window": window},
                request=request,
                session=session_var.get(),
            )
            raise RateLimitExceeded(window)
        return next(request)
