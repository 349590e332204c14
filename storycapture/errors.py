"""
Error taxonomy for segmented capture.

- Device errors (DeviceUnavailable, CaptureInterrupted) are fatal and propagate to the caller.
- Segment errors (DiarizationFailed, UploadFailed) are recovered at the segment boundary:
  the segment is marked failed and the session continues.
- Session state errors are programmer errors and are always raised, never ignored.
"""
from __future__ import annotations


class StoryCaptureError(Exception):
    """Base for all errors raised by storycapture."""


class DeviceUnavailable(StoryCaptureError):
    """Capture device could not be acquired. Session never becomes active."""


class CaptureInterrupted(StoryCaptureError):
    """Capture device failed mid-session. Session ends."""


class SegmentProcessingError(StoryCaptureError):
    """Failure inside one segment's finalize pipeline."""


class DiarizationFailed(SegmentProcessingError):
    """Diarization provider call failed or returned an unusable response."""


class UploadFailed(SegmentProcessingError):
    """Segment audio could not be uploaded."""


class SessionStateError(StoryCaptureError):
    """Operation not allowed in the current session state."""


class SessionNotActive(SessionStateError):
    """Operation requires an active session."""


class SessionAlreadyActive(SessionStateError):
    """start() called while a session is already running."""
