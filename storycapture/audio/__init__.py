"""Audio capture: device port, push-stream PCM device, segment buffers."""
from .buffer import RawAudioBuffer, write_wav_sync
from .device import CaptureDevice, CaptureHandle
from .receiver import AudioReceiver
from .stream_device import PcmStreamDevice

__all__ = [
    "AudioReceiver",
    "CaptureDevice",
    "CaptureHandle",
    "PcmStreamDevice",
    "RawAudioBuffer",
    "write_wav_sync",
]
