"""
In-memory store of open upload sessions.

Each entry expires after a TTL of inactivity. The cache is owned by the
application instance (see main.py) and handed to the routes; nothing here
is module-level state.
"""
from datetime import datetime, timedelta
from threading import Lock
from typing import Optional
import structlog

from services.ingestion_service import IngestionOrchestrator

logger = structlog.get_logger(__name__)

DEFAULT_TTL_MINUTES = 30


class SessionCache:
    """Upload orchestrators keyed by session id, with TTL expiration."""

    def __init__(self, ttl_minutes: int = DEFAULT_TTL_MINUTES):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._entries: dict[str, tuple[datetime, IngestionOrchestrator]] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def store(self, orchestrator: IngestionOrchestrator) -> str:
        """Keep an orchestrator, return its session id."""
        session_id = orchestrator.session.id
        with self._lock:
            self._entries[session_id] = (datetime.now() + self.ttl, orchestrator)
            self._cleanup_expired()
        return session_id

    def get(self, session_id: str) -> Optional[IngestionOrchestrator]:
        """Orchestrator for session_id, or None if expired/not found. Refreshes the TTL."""
        with self._lock:
            entry = self._entries.get(session_id)
            if entry is None:
                return None
            expires_at, orchestrator = entry
            if datetime.now() > expires_at:
                del self._entries[session_id]
                logger.info("upload_session_expired", session_id=session_id)
                return None
            self._entries[session_id] = (datetime.now() + self.ttl, orchestrator)
            return orchestrator

    def invalidate(self, session_id: str) -> None:
        """Drop a session after dismiss or cancel."""
        with self._lock:
            self._entries.pop(session_id, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _cleanup_expired(self) -> None:
        """Remove all expired entries."""
        now = datetime.now()
        expired = [k for k, (exp, _) in self._entries.items() if now > exp]
        for k in expired:
            del self._entries[k]
