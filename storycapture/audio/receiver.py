"""
Frame splitter for pushed PCM (16-bit mono 16kHz).

PcmStreamDevice feeds every binary WebSocket message through here and only
ever records whole frames, so a segment cut never splits a sample.
"""
from __future__ import annotations

import logging

from storycapture.config import get_settings

logger = logging.getLogger(__name__)

_SAMPLE_WIDTH = 2


class AudioReceiver:
    """Carries the partial frame between pushes; chunks with a torn sample are rejected."""

    def __init__(self, frame_bytes: int | None = None) -> None:
        self._frame_bytes = frame_bytes or get_settings().FRAME_BYTES
        self._pending = bytearray()
        self._dropped_chunks = 0

    @property
    def dropped_chunks(self) -> int:
        return self._dropped_chunks

    def feed(self, data: bytes) -> None:
        if not data:
            return
        if len(data) % _SAMPLE_WIDTH:
            self._dropped_chunks += 1
            logger.warning(
                "Dropped %d-byte chunk: not a whole number of int16 samples (%d dropped so far)",
                len(data),
                self._dropped_chunks,
            )
            return
        self._pending += data

    def drain_frames(self) -> list[bytes]:
        """Cut every complete frame out of the pending bytes, oldest first."""
        usable = len(self._pending) - len(self._pending) % self._frame_bytes
        if not usable:
            return []
        view = memoryview(self._pending)
        try:
            frames = [
                view[offset : offset + self._frame_bytes].tobytes()
                for offset in range(0, usable, self._frame_bytes)
            ]
        finally:
            view.release()
        del self._pending[:usable]
        return frames
