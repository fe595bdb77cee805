"""Security primitives: CSRF, sessions, rate limiting, audit log, passwords."""

from portcullis.security.audit import (
    JsonLinesSink,
    LoggingSink,
    SecurityEvent,
    emit_security_event,
    set_security_event_sink,
)
from portcullis.security.passwords import hash_password, needs_rehash, verify_password
from portcullis.security.rate_limit import (
    MemoryRateLimitStore,
    RateLimitStore,
    RedisConfig,
    RedisRateLimitStore,
)
from portcullis.security.service import SecurityService, generate_request_id
from portcullis.security.sessions import MemorySessionStore, Session, SessionStore

__all__ = [
    "JsonLinesSink",
    "LoggingSink",
    "MemoryRateLimitStore",
    "MemorySessionStore",
    "RateLimitStore",
    "RedisConfig",
    "RedisRateLimitStore",
    "SecurityEvent",
    "SecurityService",
    "Session",
    "SessionStore",
    "emit_security_event",
    "generate_request_id",
    "hash_password",
    "needs_rehash",
    "verify_password",
]
