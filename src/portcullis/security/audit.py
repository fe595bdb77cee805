"""Security event log.

Every security-relevant decision (CSRF rejections, rate-limit denials,
login/logout, authorization failures) becomes a ``SecurityEvent`` handed
to a sink. Delivery is best effort: a failing sink is logged and never
breaks the request that produced the event.
"""

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger("portcullis.security.audit")


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    """A structured security event."""

    timestamp: float
    event: str
    ip: str
    user_agent: str = ""
    session_id: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": datetime.fromtimestamp(self.timestamp, UTC).isoformat(),
            "event": self.event,
            "ip": self.ip,
            "user_agent": self.user_agent,
            "session_id": self.session_id,
            "data": self.data,
        }


type SecurityEventSink = Callable[[SecurityEvent], None]


class LoggingSink:
    """Write each event as one JSON document to ``portcullis.security.events``."""

    __slots__ = ("_logger", "_level")

    def __init__(self, level: int = logging.WARNING) -> None:
        self._logger = logging.getLogger("portcullis.security.events")
        self._level = level

    def __call__(self, event: SecurityEvent) -> None:
        self._logger.log(self._level, json.dumps(event.to_dict(), default=str))


class JsonLinesSink:
    """Append one JSON line per event to *path*.

    Parent directories are created on first write. Writes from different
    threads are serialized.
    """

    __slots__ = ("_lock", "_path")

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def __call__(self, event: SecurityEvent) -> None:
        line = json.dumps(event.to_dict(), default=str) + "\n"
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(line)


_sink_lock = threading.Lock()
_sink: SecurityEventSink | None = None


def set_security_event_sink(sink: SecurityEventSink | None) -> None:
    """Set a process-wide sink used when a service has none of its own.

    Pass ``None`` to disable delivery.
    """
    global _sink
    with _sink_lock:
        _sink = sink


def get_security_event_sink() -> SecurityEventSink | None:
    with _sink_lock:
        return _sink


def emit_security_event(event: SecurityEvent, sink: SecurityEventSink | None = None) -> None:
    """Deliver *event* to *sink* (or the process-wide sink). Never raises."""
    if sink is None:
        sink = get_security_event_sink()
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        logger.exception("Security event sink failed for %s", event.event)
