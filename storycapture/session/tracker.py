"""
SessionStateTracker: session-scoped counters and the session state machine.

Idle -> Active -> (Ending) -> Ended. Finalize tasks post turns from any segment
in any order; all mutation goes through one lock so counters stay consistent
(turn_count == elderly_turns + young_adult_turns after every call).
"""
from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Optional

from storycapture.errors import SessionAlreadyActive, SessionNotActive
from storycapture.roles.classifier import Role
from storycapture.session.models import EndReason, SessionSnapshot, SessionState, SessionStats, Turn

logger = logging.getLogger(__name__)


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars)."""
    return uuid.uuid4().hex[:12]


class SessionStateTracker:
    """One tracker per session. Not a singleton: the controller builds a fresh one for every session."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = SessionState.IDLE
        self._session_id: Optional[str] = None
        self._turns: list[Turn] = []
        self._elderly_turns = 0
        self._young_adult_turns = 0
        self._total_duration_ms = 0.0
        self._started_at: Optional[float] = None
        self._ended_at: Optional[float] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def start(self) -> str:
        """Begin a session. Raises SessionAlreadyActive unless idle."""
        with self._lock:
            if self._state != SessionState.IDLE:
                raise SessionAlreadyActive(f"Session {self._session_id} is {self._state.value}")
            self._session_id = generate_session_id()
            self._turns = []
            self._elderly_turns = 0
            self._young_adult_turns = 0
            self._total_duration_ms = 0.0
            self._started_at = time.time()
            self._ended_at = None
            self._state = SessionState.ACTIVE
            logger.info("Session %s started", self._session_id)
            return self._session_id

    def record_turn(self, turn: Turn) -> None:
        """Count one turn. Only valid while active."""
        with self._lock:
            if self._state != SessionState.ACTIVE:
                raise SessionNotActive(f"Cannot record turn: session is {self._state.value}")
            self._turns.append(turn)
            if turn.role == Role.ELDERLY:
                self._elderly_turns += 1
            else:
                self._young_adult_turns += 1
            self._total_duration_ms = max(self._total_duration_ms, turn.session_end_ms)

    def mark_ending(self) -> None:
        """Active -> Ending. No new turns are accepted afterwards."""
        with self._lock:
            if self._state != SessionState.ACTIVE:
                raise SessionNotActive(f"Cannot end: session is {self._state.value}")
            self._state = SessionState.ENDING

    def end(self, reason: Optional[EndReason] = None) -> SessionSnapshot:
        """Freeze the session and return its snapshot. A second call raises SessionNotActive."""
        with self._lock:
            if self._state not in (SessionState.ACTIVE, SessionState.ENDING):
                raise SessionNotActive(f"Cannot end: session is {self._state.value}")
            self._state = SessionState.ENDED
            self._ended_at = time.time()
            turns = sorted(self._turns, key=lambda t: (t.segment_number, t.start_ms))
            logger.info(
                "Session %s ended (%s): %d turns, %.1fs",
                self._session_id,
                reason.value if reason else "unspecified",
                len(turns),
                self._total_duration_ms / 1000.0,
            )
            return SessionSnapshot(
                session_id=self._session_id,
                turns=tuple(turns),
                total_duration_ms=self._total_duration_ms,
                started_at=self._started_at,
                ended_at=self._ended_at,
                end_reason=reason,
            )

    def stats(self) -> SessionStats:
        with self._lock:
            return SessionStats(
                turn_count=len(self._turns),
                elderly_turns=self._elderly_turns,
                young_adult_turns=self._young_adult_turns,
                total_duration_ms=self._total_duration_ms,
                is_active=self._state == SessionState.ACTIVE,
            )
