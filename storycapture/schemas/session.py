"""
Response schemas for the session HTTP API and WebSocket events.

Times are milliseconds. Turn times are segment-relative; session_start_ms /
session_end_ms place a turn on the session timeline.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from storycapture.roles.classifier import Role
from storycapture.session.models import Segment, SessionSnapshot, SessionStats, Turn


class TurnOut(BaseModel):
    segment_number: int = Field(..., ge=1)
    role: str = Field(..., description="elderly | young_adult")
    speaker_id: str
    text: str
    start_ms: float = Field(..., description="Start within the segment")
    end_ms: float = Field(..., description="End within the segment")
    session_start_ms: float
    session_end_ms: float
    confidence: float = Field(0.0, description="Mean word log-probability; closer to 0 is more confident")

    @classmethod
    def from_turn(cls, turn: Turn) -> "TurnOut":
        return cls(
            segment_number=turn.segment_number,
            role=turn.role.value,
            speaker_id=turn.speaker_id,
            text=turn.text,
            start_ms=turn.start_ms,
            end_ms=turn.end_ms,
            session_start_ms=turn.segment_offset_ms + turn.start_ms,
            session_end_ms=turn.session_end_ms,
            confidence=turn.confidence,
        )


class SegmentOut(BaseModel):
    segment_number: int = Field(..., ge=1)
    status: str = Field(..., description="recording | finalizing | processed | failed")
    started_at_ms: float
    duration_ms: float
    audio_url: Optional[str] = None
    error: Optional[str] = None
    turns: list[TurnOut] = Field(default_factory=list)

    @classmethod
    def from_segment(cls, segment: Segment) -> "SegmentOut":
        return cls(
            segment_number=segment.segment_number,
            status=segment.status.value,
            started_at_ms=segment.started_at_ms,
            duration_ms=segment.duration_ms,
            audio_url=segment.audio_url,
            error=segment.error,
            turns=[TurnOut.from_turn(t) for t in segment.turns],
        )


class StatsOut(BaseModel):
    """Mirrors SessionStats. turn_count == elderly_turns + young_adult_turns."""

    turn_count: int = 0
    elderly_turns: int = 0
    young_adult_turns: int = 0
    total_duration_ms: float = 0.0
    is_active: bool = False

    @classmethod
    def from_stats(cls, stats: SessionStats) -> "StatsOut":
        return cls(
            turn_count=stats.turn_count,
            elderly_turns=stats.elderly_turns,
            young_adult_turns=stats.young_adult_turns,
            total_duration_ms=stats.total_duration_ms,
            is_active=stats.is_active,
        )


class SessionOut(BaseModel):
    """A session as seen by GET /api/sessions/{id}: live segments, or the ended snapshot."""

    session_id: str
    state: str = Field(..., description="idle | active | ending | ended")
    end_reason: Optional[str] = None
    stats: StatsOut
    segments: list[SegmentOut] = Field(default_factory=list)
    turns: list[TurnOut] = Field(default_factory=list)
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot, segments: Optional[list[Segment]] = None) -> "SessionOut":
        return cls(
            session_id=snapshot.session_id,
            state="ended",
            end_reason=snapshot.end_reason.value if snapshot.end_reason else None,
            stats=StatsOut.from_stats(snapshot_stats(snapshot)),
            segments=[SegmentOut.from_segment(s) for s in segments or []],
            turns=[TurnOut.from_turn(t) for t in snapshot.turns],
            started_at=snapshot.started_at,
            ended_at=snapshot.ended_at,
        )


def snapshot_stats(snapshot: SessionSnapshot) -> SessionStats:
    """Stats recomputed from a frozen snapshot (is_active is always False)."""
    elderly = sum(1 for t in snapshot.turns if t.role == Role.ELDERLY)
    return SessionStats(
        turn_count=len(snapshot.turns),
        elderly_turns=elderly,
        young_adult_turns=len(snapshot.turns) - elderly,
        total_duration_ms=snapshot.total_duration_ms,
        is_active=False,
    )
