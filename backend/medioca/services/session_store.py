"""In-memory store for consultation sessions.

Sessions live only in process memory and are lost on restart. The store is
bounded: it keeps at most max_sessions records, evicting the least recently
used, and drops records idle for longer than ttl_seconds when they are next
looked up.
"""

import logging
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from datetime import datetime, timezone

from medioca.schemas.consultation import ConsultationSession

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 500
DEFAULT_TTL_SECONDS = 4 * 60 * 60


class SessionStore:
    """LRU mapping of session id to mutable session record.

    Args:
        max_sessions: Maximum number of sessions kept before LRU eviction.
        ttl_seconds: Idle time after which a session expires. None disables expiry.
        clock: Monotonic time source in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        ttl_seconds: float | None = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_sessions < 1:
            raise ValueError("max_sessions must be at least 1")
        self._max_sessions = max_sessions
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: OrderedDict[str, ConsultationSession] = OrderedDict()
        self._touched_at: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator[ConsultationSession]:
        return iter(self.values())

    def add(self, session: ConsultationSession) -> None:
        """Insert a new session, evicting beyond capacity.

        Closed sessions are evicted before active ones, least recently used first.
        """
        if session.id in self._sessions:
            raise ValueError(f"Session {session.id} already stored")
        self._sessions[session.id] = session
        self._touched_at[session.id] = self._clock()
        while len(self._sessions) > self._max_sessions:
            evicted_id = self._eviction_candidate()
            self.discard(evicted_id)
            logger.info("Evicted least recently used session %s", evicted_id)

    def _eviction_candidate(self) -> str:
        for session_id, session in self._sessions.items():
            if not session.is_active:
                return session_id
        return next(iter(self._sessions))

    def get(self, session_id: str) -> ConsultationSession | None:
        """Look up a session, dropping it if it has expired."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if self._is_expired(session_id):
            self.discard(session_id)
            logger.info("Session %s expired after %.0fs idle", session_id, self._ttl_seconds)
            return None
        self._sessions.move_to_end(session_id)
        return session

    def touch(self, session: ConsultationSession) -> None:
        """Record activity on a session, refreshing its expiry and LRU position."""
        if session.id not in self._sessions:
            return
        self._touched_at[session.id] = self._clock()
        session.last_active_at = datetime.now(timezone.utc)
        self._sessions.move_to_end(session.id)

    def discard(self, session_id: str) -> bool:
        """Remove a session. Returns False if it was not present."""
        self._touched_at.pop(session_id, None)
        return self._sessions.pop(session_id, None) is not None

    def purge_expired(self) -> int:
        """Drop every expired session. Returns how many were removed."""
        expired = [sid for sid in self._sessions if self._is_expired(sid)]
        for sid in expired:
            self.discard(sid)
        return len(expired)

    def values(self) -> list[ConsultationSession]:
        """All unexpired sessions, least recently used first."""
        self.purge_expired()
        return list(self._sessions.values())

    def active(self) -> list[ConsultationSession]:
        return [s for s in self.values() if s.is_active]

    def _is_expired(self, session_id: str) -> bool:
        if self._ttl_seconds is None:
            return False
        return self._clock() - self._touched_at[session_id] > self._ttl_seconds
