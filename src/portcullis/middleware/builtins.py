"""The middleware every app starts with."""

from portcullis.config import AppConfig
from portcullis.middleware.auth import GuestOnly, RequireAdmin, RequireAuth, RequireRole, api_only
from portcullis.middleware.csrf import CsrfMiddleware
from portcullis.middleware.registry import MiddlewareRegistry
from portcullis.middleware.throttle import ThrottleMiddleware
from portcullis.security.service import SecurityService


def register_builtins(
    registry: MiddlewareRegistry, config: AppConfig, security: SecurityService
) -> None:
    """Register ``auth``, ``admin``, ``role``, ``guest``, ``csrf``, ``throttle``, ``api``.

    Names already present in *registry* are left alone, so applications
    can replace a built-in by registering their own under the same name
    first.
    """
    auth = RequireAuth(config, security)
    role = RequireRole(auth, security)
    builtins = {
        "auth": auth,
        "admin": RequireAdmin(role),
        "role": role,
        "guest": GuestOnly(config),
        "csrf": CsrfMiddleware(config, security),
        "throttle": ThrottleMiddleware(config, security),
        "api": api_only,
    }
    for name, middleware in builtins.items():
        if name not in registry:
            registry.register(name, middleware)
