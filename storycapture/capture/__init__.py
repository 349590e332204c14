"""Segmented capture: controller (session lifecycle, rotation, caps) and per-segment finalizer."""
from .controller import SegmentCaptureController
from .finalizer import SegmentFinalizer

__all__ = ["SegmentCaptureController", "SegmentFinalizer"]
