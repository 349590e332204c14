"""
PcmStreamDevice: capture device fed by a push stream of PCM bytes.

The WebSocket session pushes client audio in with feed(); the controller sees
an ordinary CaptureDevice. Frames arriving between stop() and the next start()
are carried into the next segment so rotation never drops audio.
"""
from __future__ import annotations

import logging
from typing import Optional

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.audio.device import CaptureDevice, CaptureHandle
from storycapture.audio.receiver import AudioReceiver
from storycapture.config import get_settings
from storycapture.errors import CaptureInterrupted, DeviceUnavailable

logger = logging.getLogger(__name__)


class _PcmStreamHandle(CaptureHandle):
    def __init__(self, device: "PcmStreamDevice") -> None:
        self._device = device
        self._buffer = bytearray()
        self._recording = False
        self._closed = False

    def _append(self, frame: bytes) -> None:
        if not self._closed:
            self._buffer.extend(frame)

    async def start(self) -> None:
        if self._closed:
            raise CaptureInterrupted("Capture handle is closed")
        self._recording = True

    async def stop(self) -> RawAudioBuffer:
        if self._closed:
            raise CaptureInterrupted("Capture handle is closed")
        self._recording = False
        pcm = bytes(self._buffer)
        self._buffer = bytearray()
        return RawAudioBuffer(
            pcm=pcm,
            sample_rate=self._device.sample_rate,
            sample_width=self._device.sample_width,
            channels=self._device.channels,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._recording = False
        self._buffer = bytearray()
        self._device._release(self)

    @property
    def is_recording(self) -> bool:
        return self._recording


class PcmStreamDevice(CaptureDevice):
    """
    One device per client connection. Only one handle may be open at a time;
    a second open() while held raises DeviceUnavailable.
    """

    def __init__(self, frame_bytes: int | None = None) -> None:
        settings = get_settings()
        self.sample_rate = settings.SAMPLE_RATE
        self.sample_width = settings.SAMPLE_WIDTH
        self.channels = settings.CHANNELS
        self._receiver = AudioReceiver(frame_bytes=frame_bytes)
        self._handle: Optional[_PcmStreamHandle] = None

    async def open(self) -> CaptureHandle:
        if self._handle is not None:
            raise DeviceUnavailable("Capture device already in use by another session")
        self._handle = _PcmStreamHandle(self)
        logger.debug("PCM stream device acquired")
        return self._handle

    def feed(self, data: bytes) -> None:
        """Push raw PCM bytes. Dropped when no handle is open."""
        self._receiver.feed(data)
        frames = self._receiver.drain_frames()
        if self._handle is None:
            return
        for frame in frames:
            self._handle._append(frame)

    def _release(self, handle: _PcmStreamHandle) -> None:
        if self._handle is handle:
            self._handle = None
            logger.debug("PCM stream device released")

    @property
    def in_use(self) -> bool:
        return self._handle is not None
