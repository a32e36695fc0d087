"""Value types shared by the screening engine, scorer and providers.

Price history is carried as the canonical OHLCV :class:`pandas.DataFrame`
produced by every price provider (``timestamp``, ``open``, ``high``,
``low``, ``close``, ``volume``; sorted by ``timestamp`` ascending).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Mapping, Sequence

import pandas as pd

# Bars needed on top of the lookback to compute a trailing return.
MOMENTUM_LOOKBACK: int = 20


class Disposition(Enum):
    """Terminal classification of one ticker within a screening run."""

    INCLUDED = "included"
    SKIPPED_BLANK = "skipped_blank"
    SKIPPED_NO_FUNDAMENTALS = "skipped_no_fundamentals"
    SKIPPED_NO_PRICES = "skipped_no_prices"
    SKIPPED_FILTERED_OUT = "skipped_filtered_out"
    FAILED_FUNDAMENTALS = "failed_fundamentals"
    FAILED_PRICES = "failed_prices"
    FAILED = "failed"


class NormalizationMode(Enum):
    """Cross-sectional normalization applied after all pipelines finish."""

    NONE = "none"
    GLOBAL = "global"
    SECTOR = "sector"

    @classmethod
    def parse(cls, value: str | None) -> "NormalizationMode":
        """Parse ``none``/``global``/``sector`` (case-insensitive)."""
        key = (value or "none").strip().lower()
        for mode in cls:
            if mode.value == key:
                return mode
        raise ValueError(
            f"Unknown normalization mode '{value}'. Expected one of: none, global, sector"
        )


@dataclass(frozen=True)
class Fundamentals:
    """Point-in-time valuation and quality metrics for one ticker."""

    pe: float
    ev_to_ebitda: float
    fcf_yield: float
    pb: float
    roic: float
    gross_margin: float
    net_debt_to_ebitda: float
    sector: str


@dataclass(frozen=True)
class OptionsSnapshot:
    """Summary of options-market positioning for one ticker."""

    put_call_ratio: float
    implied_vol_rank: float
    call_volume_to_avg_20d: float
    near_otm_call_oi_delta: float


@dataclass(frozen=True)
class MacroSnapshot:
    """Run-wide macro backdrop, fetched once per screen."""

    ten_year_yield: float
    two_ten_spread: float
    cpi_yoy: float
    pmi: float
    dxy: float
    wti: float


# Substituted when the macro provider fails.
NEUTRAL_MACRO = MacroSnapshot(
    ten_year_yield=0.0,
    two_ten_spread=0.0,
    cpi_yoy=3.0,
    pmi=50.0,
    dxy=100.0,
    wti=0.0,
)


_DEFAULT_WEIGHTS: dict[str, float] = {
    "value": 0.40,
    "quality": 0.20,
    "momentum": 0.15,
    "options": 0.15,
    "macro": 0.10,
}


@dataclass(frozen=True)
class ScoringWeights:
    """Coefficients multiplied into the five raw factors."""

    value: float
    quality: float
    momentum: float
    options: float
    macro: float

    def __post_init__(self) -> None:
        for name in _DEFAULT_WEIGHTS:
            if getattr(self, name) < 0:
                raise ValueError(f"Scoring weight '{name}' must be non-negative")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None = None) -> "ScoringWeights":
        """Build weights from a config mapping, filling gaps with defaults."""
        merged = {**_DEFAULT_WEIGHTS}
        for key, val in (data or {}).items():
            key = str(key).lower()
            if key in merged:
                merged[key] = float(val)
        return cls(**merged)


@dataclass(frozen=True)
class Score:
    """Weighted factor components.  ``total`` is always derived."""

    value: float = 0.0
    quality: float = 0.0
    momentum: float = 0.0
    options: float = 0.0
    macro: float = 0.0

    @property
    def total(self) -> float:
        return self.value + self.quality + self.momentum + self.options + self.macro


@dataclass(frozen=True)
class ScoreBreakdown:
    """Unweighted factors next to the weighted score they produce."""

    value_raw: float
    quality_raw: float
    momentum_raw: float
    options_raw: float
    macro_raw: float
    weights: ScoringWeights
    weighted: Score

    @property
    def total_raw(self) -> float:
        return (
            self.value_raw + self.quality_raw + self.momentum_raw
            + self.options_raw + self.macro_raw
        )


def trailing_momentum(
    prices: pd.DataFrame, lookback: int = MOMENTUM_LOOKBACK,
) -> float | None:
    """Return ``close[-1] / close[-1 - lookback] - 1`` or None.

    None means the return is undefined: fewer than ``lookback + 1`` bars,
    a non-positive reference close, or a non-finite result.
    """
    if prices is None or len(prices) < lookback + 1:
        return None
    close = prices["close"]
    last = float(close.iloc[-1])
    prev = float(close.iloc[-(lookback + 1)])
    if not prev > 0:
        return None
    mom = (last - prev) / prev
    return mom if math.isfinite(mom) else None


@dataclass(frozen=True)
class ScreenFilters:
    """Optional AND-combined constraints applied before optional work.

    Unset fields impose no restriction.
    """

    min_fcf_yield: float | None = None
    max_pe: float | None = None
    min_roic: float | None = None
    max_net_debt_to_ebitda: float | None = None
    min_momentum: float | None = None

    @property
    def is_empty(self) -> bool:
        return all(
            v is None for v in (
                self.min_fcf_yield, self.max_pe, self.min_roic,
                self.max_net_debt_to_ebitda, self.min_momentum,
            )
        )

    def matches(self, fundamentals: Fundamentals, prices: pd.DataFrame) -> bool:
        """Return True when *fundamentals* and *prices* satisfy every constraint.

        A metric that is missing (NaN) or otherwise non-finite fails any
        constraint set on it, as does undefined momentum.
        """
        f = fundamentals
        if not _at_least(f.fcf_yield, self.min_fcf_yield):
            return False
        if not _at_most(f.pe, self.max_pe):
            return False
        if not _at_least(f.roic, self.min_roic):
            return False
        if not _at_most(f.net_debt_to_ebitda, self.max_net_debt_to_ebitda):
            return False

        if self.min_momentum is not None:
            mom = trailing_momentum(prices)
            if mom is None or mom < self.min_momentum:
                return False

        return True


def _at_least(value: float, limit: float | None) -> bool:
    if limit is None:
        return True
    return math.isfinite(value) and value >= limit


def _at_most(value: float, limit: float | None) -> bool:
    if limit is None:
        return True
    return math.isfinite(value) and value <= limit


@dataclass(frozen=True, eq=False)
class ScreenResult:
    """One included ticker with the exact inputs its score was computed from."""

    ticker: str
    fundamentals: Fundamentals
    prices: pd.DataFrame
    score: Score
    macro: MacroSnapshot
    options: OptionsSnapshot | None = None


@dataclass(frozen=True)
class ScreenProgress:
    """Emitted once per ticker when its pipeline finishes."""

    ticker: str
    completed: int
    total: int
    disposition: Disposition


@dataclass(frozen=True)
class ScreenRequest:
    """Parameters of one screening run."""

    tickers: Sequence[str]
    start: date
    end: date
    weights: ScoringWeights
    filters: ScreenFilters | None = None
    normalization: NormalizationMode = NormalizationMode.NONE
    min_group_size: int = 5
