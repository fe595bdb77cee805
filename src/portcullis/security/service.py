"""The security service.

One instance per application, built at start-up. It owns the CSRF
secret, the rate-limit store and the security event sink, and works on
the session store the session middleware loads from.

All checks return booleans and never raise; turning a failed check into
a 403/429 is the middleware's job.
"""

import hashlib
import hmac
import ipaddress
import logging
import secrets
import time
from collections.abc import Callable
from typing import Any

from portcullis.config import SecurityConfig, SessionConfig
from portcullis.http.request import Request
from portcullis.security.audit import (
    JsonLinesSink,
    LoggingSink,
    SecurityEvent,
    SecurityEventSink,
    emit_security_event,
)
from portcullis.security.passwords import hash_password, verify_password
from portcullis.security.rate_limit import MemoryRateLimitStore, RateLimitStore
from portcullis.security.sessions import MemorySessionStore, Session, SessionStore

logger = logging.getLogger("portcullis.security")

# Checked in order; the first public address wins.
CLIENT_IP_HEADERS: tuple[str, ...] = ("X-Forwarded-For", "X-Real-IP", "Client-IP")

DEFAULT_CLIENT_IP = "127.0.0.1"


def generate_request_id() -> str:
    """``req_`` followed by 24 hex characters."""
    return "req_" + secrets.token_hex(12)


def _is_public_ip(value: str) -> bool:
    try:
        addr = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not (
        addr.is_private
        or addr.is_reserved
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_multicast
        or addr.is_unspecified
    )


class SecurityService:
    """CSRF tokens, session hardening, rate limiting, client IPs, event log.

    Usage::

        security = SecurityService(config.security, session_config=config.session)
        token = security.issue_csrf_token(session)
        security.validate_csrf_token(session, submitted)  # -> bool
        security.check_rate_limit(f"login_{ip}", 5, 300)  # -> bool

    ``clock`` returns the current time in seconds and is injectable so
    TTLs and windows can be tested without sleeping.
    """

    def __init__(
        self,
        config: SecurityConfig | None = None,
        *,
        session_config: SessionConfig | None = None,
        sessions: SessionStore | None = None,
        rate_limits: RateLimitStore | None = None,
        sink: SecurityEventSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.config = config or SecurityConfig()
        self.session_config = session_config or SessionConfig()
        if sessions is None:
            sessions = MemorySessionStore(self.session_config.max_age)
        self.sessions: SessionStore = sessions
        self.rate_limits: RateLimitStore = (
            rate_limits if rate_limits is not None else MemoryRateLimitStore()
        )
        if sink is None:
            if self.config.security_log_path:
                sink = JsonLinesSink(self.config.security_log_path)
            else:
                sink = LoggingSink()
        self.sink: SecurityEventSink = sink
        self.clock = clock
        self._secret = (self.config.csrf_secret or secrets.token_hex(64)).encode("utf-8")

    # -- CSRF --

    def issue_csrf_token(self, session: Session) -> str:
        """Create a token for *session*, replacing any previous one."""
        now = self.clock()
        message = f"{session.id}{now}".encode()
        token = hmac.new(self._secret, message, hashlib.sha256).hexdigest()
        session.csrf_token = token
        session.csrf_issued_at = now
        return token

    def csrf_token(self, session: Session) -> str:
        """The session's live token, issuing a new one if absent or expired."""
        if session.csrf_token is None or self._csrf_expired(session):
            return self.issue_csrf_token(session)
        return session.csrf_token

    def _csrf_expired(self, session: Session) -> bool:
        issued = session.csrf_issued_at
        return issued is None or self.clock() - issued > self.config.csrf_ttl

    def validate_csrf_token(self, session: Session | None, submitted: str | None) -> bool:
        """Check *submitted* against the session's token.

        An expired token is cleared. A successful check does not consume
        the token; it stays valid until its TTL runs out.
        """
        if session is None or session.csrf_token is None:
            return False
        if self._csrf_expired(session):
            self.invalidate_csrf_token(session)
            return False
        if not submitted:
            return False
        return hmac.compare_digest(session.csrf_token.encode(), submitted.encode())

    def invalidate_csrf_token(self, session: Session) -> None:
        session.csrf_token = None
        session.csrf_issued_at = None

    # -- Rate limiting --

    def check_rate_limit(
        self,
        key: str,
        max_requests: int | None = None,
        window_seconds: int | None = None,
    ) -> bool:
        """Record a request under *key*; ``False`` when over the limit.

        Store failures are logged and the request is allowed.
        """
        if not self.config.rate_limit_enabled:
            return True
        if max_requests is None:
            max_requests = self.config.rate_limit_requests
        if window_seconds is None:
            window_seconds = self.config.rate_limit_window
        try:
            return self.rate_limits.hit(key, max_requests, window_seconds, self.clock())
        except Exception:
            logger.exception("Rate-limit store failed for key %s; allowing request", key)
            return True

    # -- Client IP --

    def resolve_client_ip(self, request: Request | None) -> str:
        """Best-effort client address.

        Proxy headers are only trusted when they carry a public address.
        The transport peer is then used as-is, and ``127.0.0.1`` last.
        """
        if request is None:
            return DEFAULT_CLIENT_IP
        for header in CLIENT_IP_HEADERS:
            raw = request.headers.get(header)
            if not raw:
                continue
            candidate = raw.split(",")[0].strip()
            if _is_public_ip(candidate):
                return candidate
        if request.client:
            peer = request.client[0]
            try:
                ipaddress.ip_address(peer)
            except ValueError:
                pass
            else:
                return peer
        return DEFAULT_CLIENT_IP

    # -- Event log --

    def log_security_event(
        self,
        name: str,
        data: dict[str, Any] | None = None,
        *,
        request: Request | None = None,
        session: Session | None = None,
    ) -> None:
        """Record a security event. Never raises."""
        try:
            event = SecurityEvent(
                timestamp=self.clock(),
                event=name,
                ip=self.resolve_client_ip(request),
                user_agent=request.user_agent if request is not None else "",
                session_id=session.id if session is not None else None,
                data=dict(data or {}),
            )
        except Exception:
            logger.exception("Could not build security event %s", name)
            return
        emit_security_event(event, self.sink)

    # -- Sessions --

    def start_session(self) -> Session:
        """A new anonymous session with its rotation clock started."""
        return self.harden_session(self.sessions.create(self.clock()))

    def load_session(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        return self.sessions.load(session_id, self.clock())

    def harden_session(self, session: Session) -> Session:
        """Rotate the session id when the rotation interval has passed."""
        now = self.clock()
        if session.is_new:
            session.rotated_at = now
            return session
        if now - session.rotated_at > self.session_config.rotation_interval:
            old_id = session.id
            session = self.sessions.regenerate(session, now)
            logger.debug("Rotated session %s -> %s", old_id[:8], session.id[:8])
        return session

    def login(
        self,
        session: Session,
        user_id: str,
        role: str | None = None,
        *,
        request: Request | None = None,
    ) -> Session:
        """Bind *user_id* to the session under a fresh id and CSRF token."""
        session = self.sessions.regenerate(session, self.clock())
        session.user_id = str(user_id)
        session.role = role
        self.issue_csrf_token(session)
        self.sessions.save(session)
        self.log_security_event(
            "auth.login.success", {"user_id": session.user_id}, request=request, session=session
        )
        return session

    def logout(self, session: Session, *, request: Request | None = None) -> Session:
        """Destroy *session* and return a fresh anonymous one."""
        self.log_security_event(
            "auth.logout", {"user_id": session.user_id}, request=request, session=session
        )
        self.invalidate_csrf_token(session)
        self.sessions.destroy(session.id)
        return self.start_session()

    # -- Passwords --

    @staticmethod
    def hash_password(password: str) -> str:
        return hash_password(password)

    @staticmethod
    def verify_password(password: str, phc_hash: str) -> bool:
        return verify_password(password, phc_hash)

    generate_request_id = staticmethod(generate_request_id)
