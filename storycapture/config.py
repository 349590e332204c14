"""Application configuration. Loads from env vars."""
from pydantic import Field
from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    """App settings. Override via environment variables."""

    # Audio: PCM 16-bit mono, 16kHz
    SAMPLE_RATE: int = 16000
    SAMPLE_WIDTH: int = 2  # 16-bit
    CHANNELS: int = 1

    # Frame: 20ms @ 16kHz = 320 samples = 640 bytes
    FRAME_MS: int = 20
    FRAME_BYTES: int = 640  # 320 * 2

    # Segmented capture: one session = up to MAX_SEGMENTS windows of SEGMENT_WINDOW_MS each.
    SEGMENT_WINDOW_MS: int = Field(30000, gt=0)
    MAX_SEGMENTS: int = Field(10, gt=0)
    MAX_SESSION_MS: int = Field(300000, gt=0)  # 5 minutes

    # Finalize pipeline (upload -> diarize -> compile -> classify -> record), one task per segment.
    FINALIZE_CONCURRENCY: int = Field(0, ge=0)  # 0 = MAX_SEGMENTS
    FINALIZE_TIMEOUT_SEC: float = 300.0  # stop_session waits this long for in-flight segments

    # Speaker diarization. When disabled, roles come from the heuristic fallback classifier.
    DIARIZATION_ENABLED: bool = True
    ELEVENLABS_API_KEY: str = ""
    ELEVENLABS_MODEL_ID: str = "scribe_v1"
    ELEVENLABS_LANGUAGE_CODE: str = "eng"
    ELEVENLABS_TIMEOUT_SEC: float = 60.0

    # Heuristic fallback: utterances longer than this (chars) are attributed to the elderly speaker.
    FALLBACK_LONG_UTTERANCE_CHARS: int = 200

    # Segment audio upload: "local" writes WAV files, "http" posts to UPLOAD_URL, "none" skips.
    UPLOAD_BACKEND: Literal["local", "http", "none"] = "local"
    UPLOAD_DIR: str = "./recordings"
    UPLOAD_URL: str = ""
    UPLOAD_TIMEOUT_SEC: float = 30.0

    # Segment/turn persistence: one append-only .jsonl per session.
    SEGMENT_STORE_ENABLED: bool = True
    SEGMENT_STORE_DIR: str = "./sessions"

    # Logging: level (DEBUG, INFO, WARNING, ERROR); file path empty = console only.
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    class Config:
        env_file = ".env"
        extra = "ignore"


def get_settings() -> Settings:
    return Settings()
