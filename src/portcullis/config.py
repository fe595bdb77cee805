"""Application configuration.

AppConfig, SecurityConfig and SessionConfig are frozen dataclasses:
immutable after creation and read by attribute.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

# Sent on every response unless the handler set the header itself.
DEFAULT_SECURITY_HEADERS: Mapping[str, str] = MappingProxyType(
    {
        "X-Frame-Options": "DENY",
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "strict-origin-when-cross-origin",
        "Content-Security-Policy": (
            "default-src 'self'; base-uri 'self'; frame-ancestors 'none'; object-src 'none'"
        ),
    }
)


@dataclass(frozen=True, slots=True)
class SessionConfig:
    """Session cookie and rotation settings.

    The cookie carries only the signed session id; session data lives in
    the session store.
    """

    cookie_name: str = "portcullis_session"
    max_age: int = 7200  # 2 hours
    rotation_interval: int = 300
    path: str = "/"
    domain: str | None = None
    secure: bool = True
    httponly: bool = True
    samesite: str = "Strict"


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """CSRF, rate limiting, response header and security log settings.

    ``csrf_secret`` is generated once per process when left empty.
    ``headers`` replaces the default security header map wholesale; an
    empty value for a name suppresses that header.
    """

    csrf_secret: str = ""
    csrf_ttl: int = 3600
    csrf_field: str = "_token"
    csrf_header: str = "X-CSRF-Token"
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 60
    rate_limit_window: int = 60
    security_log_path: str | None = None
    headers: Mapping[str, str] = field(default_factory=lambda: DEFAULT_SECURITY_HEADERS)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, secret_key="s3cr3t")
    """

    debug: bool = False
    secret_key: str = ""

    # Where the auth middleware sends anonymous browsers, and where the
    # guest middleware sends signed-in users.
    login_url: str | None = "/login"
    home_url: str = "/"

    # Paths under this prefix always get the JSON envelope.
    api_prefix: str = "/api/"

    security: SecurityConfig = field(default_factory=SecurityConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> AppConfig:
        """Build a config from ``PORTCULLIS_*`` environment variables.

        ``APP_DEBUG`` is honoured as an alias for ``PORTCULLIS_DEBUG``.
        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        sec = defaults.security
        sess = defaults.session

        def _str(name: str, default: str) -> str:
            return env.get(f"PORTCULLIS_{name}", default)

        def _int(name: str, default: int) -> int:
            raw = env.get(f"PORTCULLIS_{name}")
            return default if raw is None or raw == "" else int(raw)

        def _bool(name: str, default: bool) -> bool:
            raw = env.get(f"PORTCULLIS_{name}")
            if raw is None or raw == "":
                return default
            return raw.strip().lower() in ("1", "true", "yes", "on")

        debug = _bool("DEBUG", defaults.debug)
        if "PORTCULLIS_DEBUG" not in env and "APP_DEBUG" in env:
            debug = env["APP_DEBUG"].strip().lower() in ("1", "true", "yes", "on")

        return cls(
            debug=debug,
            secret_key=_str("SECRET_KEY", defaults.secret_key),
            login_url=_str("LOGIN_URL", defaults.login_url or "") or None,
            home_url=_str("HOME_URL", defaults.home_url),
            api_prefix=_str("API_PREFIX", defaults.api_prefix),
            security=SecurityConfig(
                csrf_secret=_str("CSRF_SECRET", sec.csrf_secret),
                csrf_ttl=_int("CSRF_TTL", sec.csrf_ttl),
                csrf_field=_str("CSRF_FIELD", sec.csrf_field),
                csrf_header=_str("CSRF_HEADER", sec.csrf_header),
                rate_limit_enabled=_bool("RATE_LIMIT_ENABLED", sec.rate_limit_enabled),
                rate_limit_requests=_int("RATE_LIMIT_REQUESTS", sec.rate_limit_requests),
                rate_limit_window=_int("RATE_LIMIT_WINDOW", sec.rate_limit_window),
                security_log_path=_str("SECURITY_LOG_PATH", "") or None,
            ),
            session=SessionConfig(
                cookie_name=_str("SESSION_COOKIE", sess.cookie_name),
                max_age=_int("SESSION_MAX_AGE", sess.max_age),
                rotation_interval=_int("SESSION_ROTATION", sess.rotation_interval),
                secure=_bool("SESSION_SECURE", sess.secure),
            ),
        )
