"""Storage adapters: segment audio upload and segment/turn persistence."""
from .segment_store import JsonlSegmentStore, NoOpSegmentStore, SegmentStore, create_segment_store
from .uploader import (
    HttpUploader,
    LocalFileUploader,
    NoOpUploader,
    Uploader,
    create_uploader,
    segment_audio_path,
)

__all__ = [
    "HttpUploader",
    "JsonlSegmentStore",
    "LocalFileUploader",
    "NoOpSegmentStore",
    "NoOpUploader",
    "SegmentStore",
    "Uploader",
    "create_segment_store",
    "create_uploader",
    "segment_audio_path",
]
