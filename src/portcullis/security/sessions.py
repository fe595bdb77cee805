"""Server-side session records and stores.

The session cookie carries only a signed session id; everything else
lives in a ``SessionStore``. The store is the unit of mutual exclusion:
concurrent requests for one session serialize on it.
"""

import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger("portcullis.security.sessions")


def new_session_id() -> str:
    """A fresh, unguessable session identifier."""
    return secrets.token_urlsafe(32)


@dataclass(slots=True)
class Session:
    """A per-client session record.

    ``flash`` holds one-shot messages: ``consume_flash()`` returns and
    clears them.
    """

    id: str
    created_at: float
    rotated_at: float
    user_id: str | None = None
    role: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    flash: dict[str, Any] = field(default_factory=dict)
    csrf_token: str | None = None
    csrf_issued_at: float | None = None
    is_new: bool = False

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.data

    def set_flash(self, key: str, message: Any) -> None:
        """Store a message for the next read."""
        self.flash[key] = message

    def consume_flash(self) -> dict[str, Any]:
        """Return all flash messages and clear them."""
        messages = self.flash
        self.flash = {}
        return messages


class SessionStore(Protocol):
    """Storage contract for sessions."""

    def create(self, now: float) -> Session: ...

    def load(self, session_id: str, now: float) -> Session | None: ...

    def save(self, session: Session) -> None: ...

    def regenerate(self, session: Session, now: float) -> Session: ...

    def destroy(self, session_id: str) -> None: ...


class MemorySessionStore:
    """In-process session store.

    Sessions idle for longer than ``max_age`` seconds are discarded on
    load, and ``create`` sweeps every idle session at most once per
    ``sweep_interval`` seconds. Only correct for a single process.
    """

    __slots__ = ("_last_sweep", "_lock", "_max_age", "_sessions", "_sweep_interval", "_touched")

    def __init__(self, max_age: int = 7200, sweep_interval: float = 60.0) -> None:
        self._max_age = max_age
        self._sweep_interval = sweep_interval
        self._last_sweep: float | None = None
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}
        self._touched: dict[str, float] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def create(self, now: float) -> Session:
        session = Session(id=new_session_id(), created_at=now, rotated_at=now, is_new=True)
        with self._lock:
            self._maybe_sweep(now)
            self._sessions[session.id] = session
            self._touched[session.id] = now
        return session

    def load(self, session_id: str, now: float) -> Session | None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            if now - self._touched.get(session_id, now) > self._max_age:
                del self._sessions[session_id]
                self._touched.pop(session_id, None)
                return None
            self._touched[session_id] = now
            session.is_new = False
            return session

    def save(self, session: Session) -> None:
        with self._lock:
            self._sessions[session.id] = session
            self._touched.setdefault(session.id, session.rotated_at)

    def regenerate(self, session: Session, now: float) -> Session:
        """Move *session* to a new id, dropping the old one."""
        with self._lock:
            self._sessions.pop(session.id, None)
            self._touched.pop(session.id, None)
            session.id = new_session_id()
            session.rotated_at = now
            self._sessions[session.id] = session
            self._touched[session.id] = now
        return session

    def destroy(self, session_id: str) -> None:
        with self._lock:
            self._sessions.pop(session_id, None)
            self._touched.pop(session_id, None)

    def _maybe_sweep(self, now: float) -> None:
        # Caller holds the lock.
        if self._last_sweep is not None and now - self._last_sweep < self._sweep_interval:
            return
        self._last_sweep = now
        idle = [sid for sid, touched in self._touched.items() if now - touched > self._max_age]
        for sid in idle:
            self._sessions.pop(sid, None)
            del self._touched[sid]
        if idle:
            logger.debug("Swept %d idle sessions", len(idle))
