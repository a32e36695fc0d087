"""Multi-factor equity screener: orchestration, scoring and normalization."""

from screener.engine import ScreenCancelled, ScreenerEngine
from screener.models import (
    NEUTRAL_MACRO,
    Disposition,
    Fundamentals,
    MacroSnapshot,
    NormalizationMode,
    OptionsSnapshot,
    Score,
    ScoreBreakdown,
    ScoringWeights,
    ScreenFilters,
    ScreenProgress,
    ScreenRequest,
    ScreenResult,
)
from screener.normalize import normalize_and_rescore
from screener.scoring import compute, explain

__all__ = [
    "NEUTRAL_MACRO",
    "Disposition",
    "Fundamentals",
    "MacroSnapshot",
    "NormalizationMode",
    "OptionsSnapshot",
    "Score",
    "ScoreBreakdown",
    "ScoringWeights",
    "ScreenCancelled",
    "ScreenFilters",
    "ScreenProgress",
    "ScreenRequest",
    "ScreenResult",
    "ScreenerEngine",
    "compute",
    "explain",
    "normalize_and_rescore",
]
