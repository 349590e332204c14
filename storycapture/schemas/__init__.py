"""Pydantic schemas for API responses."""
from storycapture.schemas.session import (
    SegmentOut,
    SessionOut,
    StatsOut,
    TurnOut,
    snapshot_stats,
)

__all__ = [
    "SegmentOut",
    "SessionOut",
    "StatsOut",
    "TurnOut",
    "snapshot_stats",
]
