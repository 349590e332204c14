"""
SessionRegistry: per-app lookup of live and completed sessions by session_id.

Held on app.state (one per FastAPI app), never module-global. Live entries point
at the owning controller; once a session ends its snapshot replaces the entry.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional, Sequence

from storycapture.session.models import Segment, SessionSnapshot

if TYPE_CHECKING:
    from storycapture.capture.controller import SegmentCaptureController

logger = logging.getLogger(__name__)


class SessionRegistry:
    def __init__(self, max_completed: int = 100) -> None:
        self._live: dict[str, "SegmentCaptureController"] = {}
        self._completed: dict[str, SessionSnapshot] = {}
        self._segments: dict[str, list[Segment]] = {}
        self._max_completed = max_completed

    def add(self, session_id: str, controller: "SegmentCaptureController") -> None:
        self._live[session_id] = controller

    def complete(self, snapshot: SessionSnapshot, segments: Sequence[Segment] = ()) -> None:
        """Move a session from live to completed. Oldest completed entries are evicted first."""
        self._live.pop(snapshot.session_id, None)
        self._completed[snapshot.session_id] = snapshot
        self._segments[snapshot.session_id] = list(segments)
        while len(self._completed) > self._max_completed:
            oldest = next(iter(self._completed))
            del self._completed[oldest]
            self._segments.pop(oldest, None)
            logger.debug("Evicted completed session %s", oldest)

    def live(self, session_id: str) -> Optional["SegmentCaptureController"]:
        return self._live.get(session_id)

    def completed(self, session_id: str) -> Optional[SessionSnapshot]:
        return self._completed.get(session_id)

    def completed_segments(self, session_id: str) -> list[Segment]:
        return list(self._segments.get(session_id, ()))

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._live or session_id in self._completed

    def __len__(self) -> int:
        return len(self._live) + len(self._completed)
