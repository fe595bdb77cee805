"""Middleware: the protocol, the named registry and the built-ins."""

from portcullis.middleware.auth import GuestOnly, RequireAdmin, RequireAuth, RequireRole, api_only
from portcullis.middleware.builtins import register_builtins
from portcullis.middleware.csrf import CsrfMiddleware, csrf_field, get_csrf_token
from portcullis.middleware.protocol import Middleware, Next
from portcullis.middleware.registry import MiddlewareRegistry, parse_identifier
from portcullis.middleware.request_id import request_id_middleware
from portcullis.middleware.security_headers import SecurityHeadersMiddleware
from portcullis.middleware.sessions import SessionMiddleware, login, logout
from portcullis.middleware.throttle import ThrottleMiddleware

__all__ = [
    "CsrfMiddleware",
    "GuestOnly",
    "Middleware",
    "MiddlewareRegistry",
    "Next",
    "RequireAdmin",
    "RequireAuth",
    "RequireRole",
    "SecurityHeadersMiddleware",
    "SessionMiddleware",
    "ThrottleMiddleware",
    "api_only",
    "csrf_field",
    "get_csrf_token",
    "login",
    "logout",
    "parse_identifier",
    "register_builtins",
    "request_id_middleware",
]
