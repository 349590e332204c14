"""
Speaker diarization: provider port, token model, utterance compiler.

Limitations:
- Speaker ids are provider labels, scoped to one request; they are not identities.
- Overlapping speech on single-channel input is attributed to one speaker at best.
- Accuracy depends on mic quality and distance.
"""
from __future__ import annotations

from storycapture.diarization.base import DiarizationProvider
from storycapture.diarization.compiler import compile_utterances, speakers
from storycapture.diarization.elevenlabs import ElevenLabsDiarizationProvider, parse_diarization_response
from storycapture.diarization.models import Token, TokenKind, Utterance

__all__ = [
    "DiarizationProvider",
    "ElevenLabsDiarizationProvider",
    "Token",
    "TokenKind",
    "Utterance",
    "compile_utterances",
    "parse_diarization_response",
    "speakers",
]
