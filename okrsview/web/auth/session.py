"""Server-side session store for session-lifetime state.

Holds values that must live no longer than the identity session, chiefly
the root tenant override. Entries are keyed by the identity provider's
session id, expire after ``max_age`` seconds, and are destroyed on logout.
Nothing here is ever written to long-lived storage.
"""

from __future__ import annotations

import time
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

TENANT_OVERRIDE_KEY = "okrs_view_selected_tenant"


class SessionStore:
    """In-memory session-scoped key/value store."""

    def __init__(self, max_age: int = 86400) -> None:
        self._max_age = max_age
        self._sessions: dict[str, dict[str, Any]] = {}

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    def _live(self, session_id: str) -> dict[str, Any] | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if time.monotonic() - session["created_at"] > self._max_age:
            self.destroy(session_id)
            return None
        return session

    def get(self, session_id: str, key: str) -> Any:
        session = self._live(session_id)
        if session is None:
            return None
        return session["values"].get(key)

    def set(self, session_id: str, key: str, value: Any) -> None:
        session = self._live(session_id)
        if session is None:
            now = time.monotonic()
            self._prune(now)
            session = {"created_at": now, "values": {}}
            self._sessions[session_id] = session
        session["values"][key] = value

    def remove(self, session_id: str, key: str) -> None:
        session = self._live(session_id)
        if session is not None:
            session["values"].pop(key, None)

    def _prune(self, now: float) -> None:
        expired = [
            sid for sid, s in self._sessions.items() if now - s["created_at"] > self._max_age
        ]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("sessions_pruned", count=len(expired))

    def destroy(self, session_id: str) -> None:
        """Drop every value held for ``session_id``."""
        if self._sessions.pop(session_id, None) is not None:
            logger.info("session_destroyed")

    def slot(self, session_id: str, key: str = TENANT_OVERRIDE_KEY) -> SessionSlot:
        return SessionSlot(self, session_id, key)


class SessionSlot:
    """One key of one session, shaped for :class:`okrsview.access.tenant.TenantScoper`."""

    def __init__(self, store: SessionStore, session_id: str, key: str) -> None:
        self._store = store
        self._session_id = session_id
        self._key = key

    def get(self) -> str | None:
        value = self._store.get(self._session_id, self._key)
        return value if isinstance(value, str) else None

    def set(self, value: str) -> None:
        self._store.set(self._session_id, self._key, value)

    def remove(self) -> None:
        self._store.remove(self._session_id, self._key)
