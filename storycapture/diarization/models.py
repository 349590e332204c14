"""
Token and utterance structures for the diarization pipeline.

A provider returns a flat, time-ordered token stream: one entry per word or
inter-word spacing, each tagged with a raw speaker id. The compiler merges
consecutive same-speaker words into utterances.

Times are milliseconds relative to the start of the segment the audio came from.
Speaker ids are opaque provider labels (e.g. "speaker_0"); they carry no identity.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TokenKind(str, Enum):
    WORD = "word"
    SPACING = "spacing"


@dataclass(frozen=True)
class Token:
    """
    One diarization unit.

    speaker_id, start_ms, end_ms may be missing on provider output; the compiler
    fills them in. log_prob is a confidence proxy: higher = more confident.
    """

    text: str
    kind: TokenKind = TokenKind.WORD
    speaker_id: Optional[str] = None
    start_ms: Optional[float] = None
    end_ms: Optional[float] = None
    log_prob: float = 0.0


@dataclass(frozen=True)
class Utterance:
    """A maximal run of same-speaker words; text is trimmed and never empty."""

    speaker_id: str
    text: str
    start_ms: float
    end_ms: float
    confidence: float

    @property
    def duration_ms(self) -> float:
        return self.end_ms - self.start_ms
