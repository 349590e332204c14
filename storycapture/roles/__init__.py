"""Role classification: swappable diarization-based and heuristic strategies."""
from .classifier import (
    DiarizationBasedClassifier,
    HeuristicFallbackClassifier,
    Role,
    RoleClassifier,
    SpeakerProfile,
    create_role_classifier,
)

__all__ = [
    "DiarizationBasedClassifier",
    "HeuristicFallbackClassifier",
    "Role",
    "RoleClassifier",
    "SpeakerProfile",
    "create_role_classifier",
]
