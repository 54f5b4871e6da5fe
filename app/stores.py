"""In-memory registry of open form sessions."""

from __future__ import annotations

import logging
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Dict

from form_session import FormSession


DEFAULT_IDLE_TTL_SECONDS = 60 * 60

_logger = logging.getLogger("pharma.forms")


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class MemorySessionStore:
    """Sessions idle longer than ``idle_ttl_seconds`` are evicted lazily on add/get."""

    def __init__(self, idle_ttl_seconds: float = DEFAULT_IDLE_TTL_SECONDS, clock: Callable[[], float] | None = None) -> None:
        self._sessions: Dict[str, FormSession] = {}
        self._meta: Dict[str, dict] = {}
        self._last_seen: Dict[str, float] = {}
        self._idle_ttl = idle_ttl_seconds
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()

    def _evict_idle(self) -> int:
        cutoff = self._clock() - self._idle_ttl
        with self._lock:
            stale = [sid for sid, seen in self._last_seen.items() if seen < cutoff]
            for sid in stale:
                self._sessions.pop(sid, None)
                self._meta.pop(sid, None)
                self._last_seen.pop(sid, None)
        if stale:
            _logger.info("sessions_evicted count=%s idle_ttl_s=%s", len(stale), self._idle_ttl)
        return len(stale)

    def add(self, session: FormSession) -> str:
        self._evict_idle()
        session_id = str(uuid.uuid4())
        now = _now()
        with self._lock:
            self._sessions[session_id] = session
            self._meta[session_id] = {"created_at": now, "updated_at": now}
            self._last_seen[session_id] = self._clock()
        return session_id

    def get(self, session_id: str) -> FormSession | None:
        self._evict_idle()
        return self._sessions.get(session_id)

    def touch(self, session_id: str) -> None:
        meta = self._meta.get(session_id)
        if meta is not None:
            meta["updated_at"] = _now()
            self._last_seen[session_id] = self._clock()

    def describe(self, session_id: str) -> dict | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return {"session_id": session_id, **self._meta.get(session_id, {}), **session.snapshot()}

    def discard(self, session_id: str) -> bool:
        with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
            self._meta.pop(session_id, None)
            self._last_seen.pop(session_id, None)
        return existed

    def __len__(self) -> int:
        return len(self._sessions)
