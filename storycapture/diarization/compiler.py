"""
DiarizationCompiler: flat token stream -> ordered speaker utterances.

Scan tokens in order keeping one open buffer. Spacing is appended to whatever
is open; a word from a different speaker closes the buffer and seeds a new one.
The final flush after the loop is mandatory, otherwise the last speaker's
closing remarks are lost.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from storycapture.diarization.models import Token, TokenKind, Utterance

logger = logging.getLogger(__name__)

UNKNOWN_SPEAKER = "unknown"


@dataclass
class _OpenBuffer:
    speaker_id: str
    text: str
    start_ms: float
    end_ms: float
    confidence_sum: float
    word_count: int

    def close(self) -> Optional[Utterance]:
        text = self.text.strip()
        if not text or self.word_count == 0:
            return None
        return Utterance(
            speaker_id=self.speaker_id,
            text=text,
            start_ms=self.start_ms,
            end_ms=self.end_ms,
            confidence=self.confidence_sum / self.word_count,
        )


def compile_utterances(tokens: Iterable[Token]) -> list[Utterance]:
    """
    Merge consecutive same-speaker word tokens into utterances.

    - Spacing tokens are appended verbatim to the open buffer; spacing before
      the first word has nowhere to go and is dropped.
    - Missing start_ms defaults to the previous token's end_ms (0 for the first);
      missing end_ms defaults to the resolved start_ms.
    - Words without a speaker are attributed to "unknown".
    """
    utterances: list[Utterance] = []
    current: Optional[_OpenBuffer] = None
    last_boundary = 0.0
    token_count = 0

    for token in tokens:
        token_count += 1
        start = token.start_ms if token.start_ms is not None else last_boundary
        end = token.end_ms if token.end_ms is not None else start
        last_boundary = end

        if token.kind == TokenKind.SPACING:
            if current is not None:
                current.text += token.text
            continue

        speaker_id = token.speaker_id or UNKNOWN_SPEAKER
        if current is not None and current.speaker_id == speaker_id:
            current.text += token.text
            current.end_ms = end
            current.confidence_sum += token.log_prob
            current.word_count += 1
            continue

        if current is not None:
            closed = current.close()
            if closed is not None:
                utterances.append(closed)
        current = _OpenBuffer(
            speaker_id=speaker_id,
            text=token.text,
            start_ms=start,
            end_ms=end,
            confidence_sum=token.log_prob,
            word_count=1,
        )

    if current is not None:
        closed = current.close()
        if closed is not None:
            utterances.append(closed)

    logger.debug("Compiled %d utterances from %d tokens", len(utterances), token_count)
    return utterances


def speakers(tokens: Iterable[Token]) -> list[str]:
    """Distinct speaker ids of word tokens, in first-seen order."""
    seen: list[str] = []
    for token in tokens:
        if token.kind != TokenKind.WORD:
            continue
        speaker_id = token.speaker_id or UNKNOWN_SPEAKER
        if speaker_id not in seen:
            seen.append(speaker_id)
    return seen
