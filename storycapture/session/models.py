"""
Session aggregate: segments, turns, lifecycle states, snapshot and stats.

Segment times are session-relative milliseconds; turn times are relative to
their segment (segment_offset_ms converts them to session time).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from storycapture.diarization.models import Utterance
from storycapture.roles.classifier import Role


class SessionState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    ENDING = "ending"
    ENDED = "ended"


class SegmentStatus(str, Enum):
    RECORDING = "recording"
    FINALIZING = "finalizing"
    PROCESSED = "processed"
    FAILED = "failed"


class EndReason(str, Enum):
    """Why a session ended. Caps are expected terminal conditions, not failures."""

    USER_STOP = "user_stop"
    MAX_SEGMENTS_REACHED = "max_segments_reached"
    SESSION_TIMEOUT = "session_timeout"
    CAPTURE_INTERRUPTED = "capture_interrupted"


@dataclass(frozen=True)
class Turn:
    """An utterance with its resolved role, owned by one segment."""

    segment_number: int
    role: Role
    speaker_id: str
    text: str
    start_ms: float
    end_ms: float
    confidence: float
    segment_offset_ms: float = 0.0

    @classmethod
    def from_utterance(
        cls,
        utterance: Utterance,
        role: Role,
        segment_number: int,
        segment_offset_ms: float = 0.0,
    ) -> "Turn":
        return cls(
            segment_number=segment_number,
            role=role,
            speaker_id=utterance.speaker_id,
            text=utterance.text,
            start_ms=utterance.start_ms,
            end_ms=utterance.end_ms,
            confidence=utterance.confidence,
            segment_offset_ms=segment_offset_ms,
        )

    @property
    def session_end_ms(self) -> float:
        return self.segment_offset_ms + self.end_ms


@dataclass
class Segment:
    """
    One fixed-length capture window.

    Mutated only by the controller (recording -> finalizing) and then by its own
    finalize task (finalizing -> processed | failed).
    """

    segment_number: int
    started_at_ms: float = 0.0
    duration_ms: float = 0.0
    status: SegmentStatus = SegmentStatus.RECORDING
    turns: list[Turn] = field(default_factory=list)
    audio_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status in (SegmentStatus.PROCESSED, SegmentStatus.FAILED)

    def to_dict(self) -> dict:
        return {
            "segment_number": self.segment_number,
            "started_at_ms": self.started_at_ms,
            "duration_ms": self.duration_ms,
            "status": self.status.value,
            "audio_url": self.audio_url,
            "error": self.error,
            "turn_count": len(self.turns),
        }


@dataclass(frozen=True)
class SessionStats:
    turn_count: int = 0
    elderly_turns: int = 0
    young_adult_turns: int = 0
    total_duration_ms: float = 0.0
    is_active: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    """Immutable result of SessionStateTracker.end()."""

    session_id: str
    turns: tuple[Turn, ...]
    total_duration_ms: float
    started_at: float
    ended_at: float
    end_reason: Optional[EndReason] = None
