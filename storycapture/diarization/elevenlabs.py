"""
ElevenLabsDiarizationProvider: speaker-tagged transcription via ElevenLabs Scribe.

Sends the segment as WAV (multipart) to the speech-to-text endpoint with
diarize=true. Response carries a `words` array (older responses: `tokens`),
one entry per word or spacing, times in seconds. Runs HTTP call in executor
to avoid blocking the event loop.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.config import get_settings
from storycapture.diarization.base import DiarizationProvider
from storycapture.diarization.models import Token, TokenKind
from storycapture.errors import DiarizationFailed

logger = logging.getLogger(__name__)

SPEECH_TO_TEXT_URL = "https://api.elevenlabs.io/v1/speech-to-text"


def _seconds_to_ms(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value) * 1000.0
    except (TypeError, ValueError):
        return None


def parse_diarization_response(payload: dict[str, Any]) -> list[Token]:
    """
    Convert a Scribe JSON response into tokens.

    Entries of type "spacing" become spacing tokens; everything else (word,
    audio_event) is a word. A response without a words/tokens array yields [].
    """
    entries = payload.get("words")
    if entries is None:
        entries = payload.get("tokens")
    if not isinstance(entries, list):
        logger.warning("No words/tokens array in diarization response (keys: %s)", sorted(payload))
        return []

    tokens: list[Token] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        kind = TokenKind.SPACING if entry.get("type") == "spacing" else TokenKind.WORD
        log_prob = entry.get("logprob")
        tokens.append(
            Token(
                text=entry.get("text") or "",
                kind=kind,
                speaker_id=entry.get("speaker_id"),
                start_ms=_seconds_to_ms(entry.get("start")),
                end_ms=_seconds_to_ms(entry.get("end")),
                log_prob=float(log_prob) if log_prob is not None else 0.0,
            )
        )
    return tokens


def _sync_transcribe_elevenlabs(
    wav_bytes: bytes,
    api_key: str,
    model_id: str,
    language_code: str,
    diarize: bool,
    timeout: float,
) -> list[Token]:
    """Blocking HTTP call; run in executor."""
    headers = {"xi-api-key": api_key}
    data = {
        "model_id": model_id,
        "language_code": language_code,
        "diarize": "true" if diarize else "false",
    }
    files = {"file": ("segment.wav", wav_bytes, "audio/wav")}

    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(SPEECH_TO_TEXT_URL, headers=headers, data=data, files=files)
    except httpx.HTTPError as e:
        raise DiarizationFailed(f"ElevenLabs request failed: {e}") from e

    if resp.status_code != 200:
        raise DiarizationFailed(
            f"ElevenLabs API error: {resp.status_code} {resp.reason_phrase} - {resp.text[:200]}"
        )
    try:
        payload = resp.json()
    except ValueError as e:
        raise DiarizationFailed("ElevenLabs returned non-JSON body") from e
    if not isinstance(payload, dict):
        raise DiarizationFailed("ElevenLabs returned unexpected JSON shape")
    return parse_diarization_response(payload)


class ElevenLabsDiarizationProvider(DiarizationProvider):
    """
    Remote diarization via ElevenLabs Scribe.
    async transcribe() runs HTTP in executor. With diarize disabled the
    provider still transcribes, but tokens carry no speaker ids.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model_id: str | None = None,
        language_code: str | None = None,
        diarize: bool | None = None,
        timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.ELEVENLABS_API_KEY
        self._model_id = model_id or settings.ELEVENLABS_MODEL_ID
        self._language_code = language_code or settings.ELEVENLABS_LANGUAGE_CODE
        self._diarize = diarize if diarize is not None else settings.DIARIZATION_ENABLED
        self._timeout = timeout if timeout is not None else settings.ELEVENLABS_TIMEOUT_SEC

    async def transcribe(self, buffer: RawAudioBuffer) -> list[Token]:
        if not self._api_key:
            raise DiarizationFailed("ElevenLabs API key not configured")
        if buffer.is_empty():
            return []
        wav_bytes = buffer.to_wav_bytes()
        loop = asyncio.get_running_loop()
        tokens = await loop.run_in_executor(
            None,
            _sync_transcribe_elevenlabs,
            wav_bytes,
            self._api_key,
            self._model_id,
            self._language_code,
            self._diarize,
            self._timeout,
        )
        logger.info("ElevenLabs returned %d tokens for %.1fs of audio", len(tokens), buffer.duration_ms / 1000.0)
        return tokens

    @property
    def diarizes(self) -> bool:
        return self._diarize
