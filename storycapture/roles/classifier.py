"""
Role classification: raw speaker ids / utterances -> {elderly, young_adult}.

Two strategies behind one interface; a session uses exactly one of them:

- DiarizationBasedClassifier: tokens carry speaker ids. The speaker with the
  greatest total spoken duration is "elderly", everyone else "young_adult".
  Known fragility: this assumes the elder does most of the talking. If the
  younger participant talks more, roles come out swapped.
- HeuristicFallbackClassifier: no speaker ids (plain transcription). Roles
  alternate per utterance and are refined by text heuristics.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from storycapture.config import get_settings
from storycapture.diarization.models import Utterance

logger = logging.getLogger(__name__)


class Role(str, Enum):
    ELDERLY = "elderly"
    YOUNG_ADULT = "young_adult"


class RoleClassifier(ABC):
    """Assigns one role per utterance. State (if any) is scoped to one session."""

    @abstractmethod
    def classify(self, utterances: Sequence[Utterance]) -> list[Role]:
        """Return roles aligned with utterances (same length, same order)."""
        ...


@dataclass
class SpeakerProfile:
    """Aggregate speaking statistics for one raw speaker id."""

    speaker_id: str
    total_duration_ms: float = 0.0
    confidence_sum: float = 0.0
    utterance_count: int = 0

    @property
    def mean_confidence(self) -> float:
        return self.confidence_sum / self.utterance_count if self.utterance_count else 0.0

    @property
    def mean_utterance_ms(self) -> float:
        return self.total_duration_ms / self.utterance_count if self.utterance_count else 0.0


def build_speaker_profiles(utterances: Sequence[Utterance]) -> list[SpeakerProfile]:
    """Per-speaker aggregates, ordered by first appearance."""
    profiles: dict[str, SpeakerProfile] = {}
    for utterance in utterances:
        profile = profiles.setdefault(utterance.speaker_id, SpeakerProfile(utterance.speaker_id))
        profile.total_duration_ms += utterance.duration_ms
        profile.confidence_sum += utterance.confidence
        profile.utterance_count += 1
    return list(profiles.values())


def assign_roles_by_duration(profiles: Sequence[SpeakerProfile]) -> dict[str, Role]:
    """
    Longest total duration -> elderly; all others young_adult.
    Ties go to the speaker seen first (max() keeps the first maximum).
    """
    if not profiles:
        return {}
    elderly = max(profiles, key=lambda p: p.total_duration_ms)
    return {
        p.speaker_id: Role.ELDERLY if p.speaker_id == elderly.speaker_id else Role.YOUNG_ADULT
        for p in profiles
    }


class DiarizationBasedClassifier(RoleClassifier):
    """
    Computes the speaker -> role mapping once per session, from the first batch
    of utterances that contains at least one speaker. Speaker ids that first
    appear in later segments map to young_adult (elderly is already taken).
    """

    def __init__(self) -> None:
        self._mapping: Optional[dict[str, Role]] = None
        self._profiles: list[SpeakerProfile] = []

    def classify(self, utterances: Sequence[Utterance]) -> list[Role]:
        if not utterances:
            return []
        if self._mapping is None:
            self._profiles = build_speaker_profiles(utterances)
            self._mapping = assign_roles_by_duration(self._profiles)
            for p in self._profiles:
                logger.info(
                    "Speaker %s: %.1fs total, mean confidence %.3f, mean utterance %.1fs -> %s",
                    p.speaker_id,
                    p.total_duration_ms / 1000.0,
                    p.mean_confidence,
                    p.mean_utterance_ms / 1000.0,
                    self._mapping[p.speaker_id].value,
                )
        for utterance in utterances:
            if utterance.speaker_id not in self._mapping:
                self._mapping[utterance.speaker_id] = Role.YOUNG_ADULT
                logger.info("New speaker %s after mapping was fixed -> young_adult", utterance.speaker_id)
        return [self._mapping[u.speaker_id] for u in utterances]

    def mapping(self) -> dict[str, Role]:
        return dict(self._mapping or {})

    def speaker_profiles(self) -> list[SpeakerProfile]:
        return list(self._profiles)


# Leading question words; "can you" etc. are multi-word prefixes.
_QUESTION_PREFIX = re.compile(
    r"^\s*(?:what|how|when|where|why|who|can you|could you|would you)\b",
    re.IGNORECASE,
)

REMINISCENCE_MARKERS = (
    "when i was young",
    "back then",
    "in my day",
    "remember when",
    "used to",
)

INQUISITIVE_MARKERS = (
    "what was",
    "how did",
    "can you tell me",
    "i wonder",
    "what if",
)


def is_question(text: str) -> bool:
    return bool(_QUESTION_PREFIX.match(text)) or text.rstrip().endswith("?")


class HeuristicFallbackClassifier(RoleClassifier):
    """
    Per-utterance roles when no speaker ids exist.

    The first utterance of the session is young_adult (the interviewer opens).
    After that the default is the opposite of the last assigned role, refined in
    precedence order: question -> young_adult, long text -> elderly,
    reminiscence markers -> elderly, inquisitive markers -> young_adult.
    """

    def __init__(self, long_utterance_chars: int | None = None) -> None:
        if long_utterance_chars is None:
            long_utterance_chars = get_settings().FALLBACK_LONG_UTTERANCE_CHARS
        self._long_utterance_chars = long_utterance_chars
        self._last_role: Optional[Role] = None

    def classify(self, utterances: Sequence[Utterance]) -> list[Role]:
        return [self.classify_text(u.text) for u in utterances]

    def classify_text(self, text: str) -> Role:
        """Classify one utterance and advance the alternation."""
        if self._last_role is None:
            role = Role.YOUNG_ADULT
        else:
            default = Role.YOUNG_ADULT if self._last_role == Role.ELDERLY else Role.ELDERLY
            role = self.apply_heuristics(text, default)
        self._last_role = role
        return role

    def apply_heuristics(self, text: str, default: Role) -> Role:
        if is_question(text):
            return Role.YOUNG_ADULT
        if len(text) > self._long_utterance_chars:
            return Role.ELDERLY
        lowered = text.lower()
        if any(marker in lowered for marker in REMINISCENCE_MARKERS):
            return Role.ELDERLY
        if any(marker in lowered for marker in INQUISITIVE_MARKERS):
            return Role.YOUNG_ADULT
        return default

    def reset(self) -> None:
        self._last_role = None


def create_role_classifier(diarized: bool) -> RoleClassifier:
    """One classifier per session: diarization-based when speaker ids exist, else heuristic."""
    if diarized:
        return DiarizationBasedClassifier()
    return HeuristicFallbackClassifier()
