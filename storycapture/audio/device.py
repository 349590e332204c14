"""
Capture device port.

A CaptureDevice is acquired once per session and yields a single-owner
CaptureHandle. The controller rotates segments on that handle:
start() -> ... -> stop() returns the segment's audio -> start() again.
"""
from __future__ import annotations

from abc import ABC, abstractmethod

from storycapture.audio.buffer import RawAudioBuffer


class CaptureHandle(ABC):
    """Exclusive handle on an open device. Never shared between segments."""

    @abstractmethod
    async def start(self) -> None:
        """Begin recording into a fresh buffer. Raises CaptureInterrupted on device failure."""
        ...

    @abstractmethod
    async def stop(self) -> RawAudioBuffer:
        """Stop recording and return everything captured since start()."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


class CaptureDevice(ABC):
    @abstractmethod
    async def open(self) -> CaptureHandle:
        """Acquire the device. Raises DeviceUnavailable."""
        ...
