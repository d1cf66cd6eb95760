from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from .models import Turn

logger = logging.getLogger("saathi.sessions")


class SessionStore(ABC):
    """Per-user conversation transcripts.

    Implementations only need get/append/evict semantics, so an external cache
    can back the store without touching the dispatcher.
    """

    @abstractmethod
    def get_or_create(self, user_id: str) -> List[Turn]:
        """Return a copy of the user's turns, seeding the system preamble if new."""

    @abstractmethod
    def append(self, user_id: str, turn: Turn) -> None:
        """Append a turn to the user's transcript."""

    @abstractmethod
    def window(self, user_id: str, n: int) -> List[Turn]:
        """Return the last ``n`` turns in order."""

    @abstractmethod
    def evict(self, user_id: str) -> bool:
        """Drop one user's session; True if it existed."""

    @abstractmethod
    def evict_idle(self, now: Optional[float] = None) -> int:
        """Drop sessions idle past the TTL; returns how many were dropped."""


class InMemorySessionStore(SessionStore):
    """Process-local session store with bounded history and idle expiry."""

    def __init__(
        self,
        system_preamble: str,
        max_turns: int = 50,
        ttl_seconds: Optional[float] = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Purpose: Initialize the session map and its capacity policy.
        Inputs/Outputs: Inputs are the preamble seeded into new sessions, the per-user
            turn cap, the idle TTL (None disables expiry), and a clock; no return.
        Side Effects / State: Creates empty in-memory caches.
        Dependencies: Uses the Turn model.
        Failure Modes: Raises ValueError when max_turns leaves no room past the preamble.
        If Removed: The dispatcher has no conversational context across turns.
        Testing Notes: Use a fake clock to drive TTL expiry deterministically.
        """
        if max_turns < 2:
            raise ValueError("max_turns must be at least 2")
        self._preamble = system_preamble
        self._max_turns = max_turns
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, List[Turn]] = {}
        self._last_seen: Dict[str, float] = {}

    def _ensure(self, user_id: str) -> List[Turn]:
        # Caller holds the lock.
        turns = self._sessions.get(user_id)
        if turns is None:
            turns = [Turn(role="system", content=self._preamble, timestamp=self._clock())]
            self._sessions[user_id] = turns
            logger.info("sessions op=create user=%s", user_id)
        self._last_seen[user_id] = self._clock()
        return turns

    def get_or_create(self, user_id: str) -> List[Turn]:
        with self._lock:
            return list(self._ensure(user_id))

    def append(self, user_id: str, turn: Turn) -> None:
        """Purpose: Append a turn and enforce the per-user history cap.
        Inputs/Outputs: Inputs are the user id and the turn; no return value.
        Side Effects / State: Creates the session if missing; trims oldest turns.
        Dependencies: Uses _ensure.
        Failure Modes: None.
        If Removed: No turn is ever recorded.
        Testing Notes: Appending past max_turns keeps the preamble and the newest turns.
        """
        # The seeded system preamble stays pinned at the front.
        with self._lock:
            turns = self._ensure(user_id)
            if not turn.timestamp:
                turn = turn.model_copy(update={"timestamp": self._clock()})
            turns.append(turn)
            overflow = len(turns) - self._max_turns
            if overflow > 0:
                pinned = 1 if turns[0].role == "system" else 0
                del turns[pinned : pinned + overflow]

    def window(self, user_id: str, n: int) -> List[Turn]:
        if n <= 0:
            return []
        with self._lock:
            turns = self._sessions.get(user_id, [])
            return list(turns[-n:])

    def evict(self, user_id: str) -> bool:
        with self._lock:
            self._last_seen.pop(user_id, None)
            return self._sessions.pop(user_id, None) is not None

    def evict_idle(self, now: Optional[float] = None) -> int:
        if self._ttl is None:
            return 0
        now = self._clock() if now is None else now
        with self._lock:
            expired = [user_id for user_id, seen in self._last_seen.items() if now - seen > self._ttl]
            for user_id in expired:
                self._sessions.pop(user_id, None)
                self._last_seen.pop(user_id, None)
        if expired:
            logger.info("sessions op=evict_idle count=%s", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


class SessionReaper:
    """Daemon thread that calls ``evict_idle`` on a fixed interval."""

    def __init__(self, store: SessionStore, interval_seconds: float) -> None:
        self._store = store
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="session-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._store.evict_idle()
            except Exception:
                logger.exception("sessions op=reap route=error")
