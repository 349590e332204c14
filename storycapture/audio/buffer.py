"""
RawAudioBuffer: the audio captured for one segment.

PCM contract: signed int16, little-endian, mono, 16kHz unless stated otherwise.
WAV encoding happens once per segment, when the buffer is handed to the
uploader or the diarization provider; never per frame.
"""
from __future__ import annotations

import io
import os
import wave
from dataclasses import dataclass

import numpy as np

# RMS threshold below which a segment is considered silent (int16 scale)
RMS_SILENCE_THRESHOLD = 100


@dataclass(frozen=True)
class RawAudioBuffer:
    """PCM bytes for one finalized segment."""

    pcm: bytes
    sample_rate: int = 16000
    sample_width: int = 2
    channels: int = 1

    @property
    def duration_ms(self) -> float:
        bytes_per_second = self.sample_rate * self.sample_width * self.channels
        if bytes_per_second == 0:
            return 0.0
        return len(self.pcm) * 1000.0 / bytes_per_second

    def is_empty(self) -> bool:
        return len(self.pcm) == 0

    def rms(self) -> float:
        """RMS of int16 samples (for silence logging)."""
        if len(self.pcm) < 2:
            return 0.0
        usable = len(self.pcm) - (len(self.pcm) % 2)
        samples = np.frombuffer(self.pcm[:usable], dtype=np.int16)
        return float(np.sqrt(np.mean(samples.astype(np.float32) ** 2)))

    def is_silent(self) -> bool:
        return self.rms() < RMS_SILENCE_THRESHOLD

    def to_wav_bytes(self) -> bytes:
        """Encode as a single WAV file: header once, all frames, close once."""
        out = io.BytesIO()
        with wave.open(out, "wb") as wav:
            wav.setnchannels(self.channels)
            wav.setsampwidth(self.sample_width)
            wav.setframerate(self.sample_rate)
            wav.writeframes(self.pcm)
        return out.getvalue()


def write_wav_sync(buffer: RawAudioBuffer, out_path: str) -> None:
    """Write buffer to a WAV file. Blocking; run in executor."""
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with wave.open(out_path, "wb") as wav:
        wav.setnchannels(buffer.channels)
        wav.setsampwidth(buffer.sample_width)
        wav.setframerate(buffer.sample_rate)
        wav.writeframes(buffer.pcm)
