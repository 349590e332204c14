"""Session model, state tracker and per-app session registry."""
from .models import (
    EndReason,
    Segment,
    SegmentStatus,
    SessionSnapshot,
    SessionState,
    SessionStats,
    Turn,
)
from .registry import SessionRegistry
from .tracker import SessionStateTracker, generate_session_id

__all__ = [
    "EndReason",
    "Segment",
    "SegmentStatus",
    "SessionRegistry",
    "SessionSnapshot",
    "SessionState",
    "SessionStateTracker",
    "SessionStats",
    "Turn",
    "generate_session_id",
]
