"""
DiarizationProvider: abstract interface for speaker-tagged transcription.

Implementations: ElevenLabsDiarizationProvider (Scribe speech-to-text).
The call is an opaque awaitable from the finalize task's point of view; it
never holds the capture device. Blocking HTTP runs in executor.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.diarization.models import Token


class DiarizationProvider(ABC):
    """
    Abstract diarization provider. Accepts one segment's raw audio and returns
    a time-ordered token stream. Raises DiarizationFailed on any failure.
    """

    @abstractmethod
    async def transcribe(self, buffer: RawAudioBuffer) -> list[Token]:
        """
        Transcribe one segment.
        Returns tokens in strict temporal order (times in ms, segment-relative).
        An empty list is a valid result (silence).
        """
        ...

    @property
    @abstractmethod
    def diarizes(self) -> bool:
        """True when tokens carry speaker ids (selects the diarization-based role classifier)."""
        ...
