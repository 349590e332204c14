"""
Uploader: persists one segment's audio and returns a URL for it.

- LocalFileUploader: writes WAV under UPLOAD_DIR, returns a file:// URL.
- HttpUploader: multipart POST to UPLOAD_URL (blob-storage upload route), returns its "url".
- NoOpUploader: upload disabled; returns None.

Blocking I/O runs in executor. Every failure surfaces as UploadFailed so the
finalizer can mark only that segment failed.
"""
from __future__ import annotations

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from storycapture.audio.buffer import RawAudioBuffer, write_wav_sync
from storycapture.config import get_settings
from storycapture.errors import UploadFailed

logger = logging.getLogger(__name__)


def segment_audio_path(session_id: str, segment_number: int) -> str:
    """Relative storage path for one segment's audio."""
    return f"sessions/{session_id}/segment-{segment_number}.wav"


class Uploader(ABC):
    @abstractmethod
    async def upload(self, buffer: RawAudioBuffer, path: str) -> Optional[str]:
        """Store buffer at path; return its URL (None when uploads are disabled)."""
        ...


class NoOpUploader(Uploader):
    """When upload disabled. No file or network I/O."""

    async def upload(self, buffer: RawAudioBuffer, path: str) -> Optional[str]:
        return None


class LocalFileUploader(Uploader):
    def __init__(self, base_dir: str | None = None) -> None:
        self._base_dir = base_dir or get_settings().UPLOAD_DIR

    async def upload(self, buffer: RawAudioBuffer, path: str) -> Optional[str]:
        out_path = os.path.join(self._base_dir, path)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, write_wav_sync, buffer, out_path)
        except OSError as e:
            raise UploadFailed(f"Failed to write {out_path}: {e}") from e
        logger.info("Segment audio saved: %s (%.1fs)", out_path, buffer.duration_ms / 1000.0)
        return Path(out_path).resolve().as_uri()


def _sync_upload_http(url: str, wav_bytes: bytes, path: str, timeout: float) -> str:
    """Blocking multipart POST; run in executor."""
    files = {"file": (os.path.basename(path), wav_bytes, "audio/wav")}
    data = {"path": path, "contentType": "audio/wav"}
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, files=files, data=data)
    except httpx.HTTPError as e:
        raise UploadFailed(f"Upload request failed: {e}") from e
    if resp.status_code != 200:
        raise UploadFailed(f"Upload failed: {resp.status_code} - {resp.text[:200]}")
    try:
        body = resp.json()
    except ValueError as e:
        raise UploadFailed("Upload response is not JSON") from e
    uploaded_url = body.get("url") if isinstance(body, dict) else None
    if not uploaded_url:
        raise UploadFailed("Upload response has no url")
    return uploaded_url


class HttpUploader(Uploader):
    def __init__(self, url: str | None = None, timeout: float | None = None) -> None:
        settings = get_settings()
        self._url = url or settings.UPLOAD_URL
        self._timeout = timeout if timeout is not None else settings.UPLOAD_TIMEOUT_SEC

    async def upload(self, buffer: RawAudioBuffer, path: str) -> Optional[str]:
        if not self._url:
            raise UploadFailed("UPLOAD_URL not configured")
        wav_bytes = buffer.to_wav_bytes()
        loop = asyncio.get_running_loop()
        uploaded_url = await loop.run_in_executor(None, _sync_upload_http, self._url, wav_bytes, path, self._timeout)
        logger.info("Segment audio uploaded: %s", uploaded_url)
        return uploaded_url


def create_uploader() -> Uploader:
    """Create uploader from UPLOAD_BACKEND (local / http / none)."""
    backend = get_settings().UPLOAD_BACKEND
    if backend == "http":
        return HttpUploader()
    if backend == "local":
        return LocalFileUploader()
    return NoOpUploader()
