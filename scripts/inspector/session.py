"""
Session lifecycle tracking.

A session stays active while tracking calls keep arriving; after a gap
longer than the inactivity threshold the next call starts a new session
and queues exactly one session start marker.
"""

import threading
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .batcher import Batcher
from .output import warn
from .storage import PersistentStore


DEFAULT_INACTIVITY_THRESHOLD = 5 * 60.0


@dataclass
class SessionState:
    """Current session and when it last saw activity (epoch seconds)."""
    session_id: str
    last_activity_at: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sessionId": self.session_id,
            "lastActivityAt": self.last_activity_at,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional["SessionState"]:
        """Rebuild from a persisted dictionary; None if unusable."""
        if not isinstance(data, dict):
            return None
        session_id = data.get("sessionId")
        last_activity_at = data.get("lastActivityAt")
        if not isinstance(session_id, str) or not session_id:
            return None
        if not isinstance(last_activity_at, (int, float)) or isinstance(last_activity_at, bool):
            return None
        return cls(session_id, float(last_activity_at))


class SessionTracker:
    """Decides on every tracking call whether to prolong or renew the session."""

    CACHE_KEY = "InspectorSession"

    def __init__(
        self,
        batcher: Batcher,
        store: PersistentStore,
        inactivity_threshold: float = DEFAULT_INACTIVITY_THRESHOLD,
        hydration_timeout: Optional[float] = 2.0,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4())
    ):
        """
        Initialize session tracker.

        Args:
            batcher: Receives session start markers
            store: Persistent store holding the session state
            inactivity_threshold: Seconds of inactivity that end a session
            hydration_timeout: Seconds to wait for the store to hydrate
            id_factory: Generates new session ids
        """
        self.batcher = batcher
        self.store = store
        self.inactivity_threshold = inactivity_threshold
        self.hydration_timeout = hydration_timeout
        self.id_factory = id_factory
        self._lock = threading.Lock()

    @property
    def session_id(self) -> Optional[str]:
        """Id of the current session, if any."""
        state = SessionState.from_dict(self.store.get(self.CACHE_KEY))
        return state.session_id if state else None

    def start_or_prolong_session(self, now: float) -> bool:
        """
        Prolong the current session or start a new one.

        Args:
            now: Current time in epoch seconds

        Returns:
            True if a new session was started
        """
        if not self.store.wait_until_ready(self.hydration_timeout):
            warn("Storage not hydrated in time; session state may be stale")

        with self._lock:
            state = SessionState.from_dict(self.store.get(self.CACHE_KEY))

            if state is None or now - state.last_activity_at > self.inactivity_threshold:
                session_id = self.id_factory()
                # Persist before queueing so a failed enqueue cannot cause a duplicate start
                self.store.set(self.CACHE_KEY, SessionState(session_id, now).to_dict())
                self.batcher.handle_session_started(session_id)
                return True

            # Never move backwards, even if the clock does
            state.last_activity_at = max(state.last_activity_at, now)
            self.store.set(self.CACHE_KEY, state.to_dict())
            return False
