"""Deterministic five-factor scoring.

:func:`explain` is the single implementation of the factor formulas;
:func:`compute` returns its weighted part.
The normalizer reuses :func:`options_factor`, :func:`macro_sector_tilt`
and :func:`weigh` for the factors it does not re-derive.
"""

from __future__ import annotations

import pandas as pd

from screener.models import (
    Fundamentals,
    MacroSnapshot,
    OptionsSnapshot,
    Score,
    ScoreBreakdown,
    ScoringWeights,
    trailing_momentum,
)

_CYCLICAL_SECTORS: frozenset[str] = frozenset({"energy", "materials", "industrials"})
_DEFENSIVE_SECTORS: frozenset[str] = frozenset({"utilities", "staples"})


# ---------------------------------------------------------------------------
# Raw factors
# ---------------------------------------------------------------------------

def value_factor(f: Fundamentals) -> float:
    """Higher FCF yield and lower multiples score higher."""
    return f.fcf_yield - f.pe / 100.0 - f.pb / 10.0 - f.ev_to_ebitda / 20.0


def quality_factor(f: Fundamentals) -> float:
    """Returns and margins, penalised by leverage."""
    return f.roic / 10.0 + f.gross_margin / 50.0 - f.net_debt_to_ebitda / 5.0


def momentum_factor(prices: pd.DataFrame) -> float:
    """20-bar trailing return, 0.0 when undefined."""
    mom = trailing_momentum(prices)
    return 0.0 if mom is None else mom


def options_factor(opt: OptionsSnapshot | None) -> float:
    if opt is None:
        return 0.0

    # IV rank near 40 is the sweet spot; out-of-range ranks contribute nothing.
    if 0.0 <= opt.implied_vol_rank <= 100.0:
        iv_component = 1.0 - abs(opt.implied_vol_rank - 40.0) / 60.0
    else:
        iv_component = 0.0

    return (
        (1.0 - opt.put_call_ratio)
        + iv_component
        + (opt.call_volume_to_avg_20d - 1.0)
        + opt.near_otm_call_oi_delta
    )


def macro_sector_tilt(sector: str, macro: MacroSnapshot) -> float:
    """Favour cyclicals in a risk-on backdrop and defensives otherwise.

    Sectors outside the cyclical/defensive sets always get 0.0.
    """
    tilt = 0.0
    if macro.pmi > 50:
        tilt += 0.2
    if macro.wti > 60:
        tilt += 0.1
    tilt += 0.1 if macro.two_ten_spread > 0 else -0.05
    tilt += 0.05 if macro.cpi_yoy < 3 else -0.05

    key = (sector or "").strip().lower()
    if key in _CYCLICAL_SECTORS:
        return tilt
    if key in _DEFENSIVE_SECTORS:
        return -tilt / 2.0
    return 0.0


# ---------------------------------------------------------------------------
# Weighting
# ---------------------------------------------------------------------------

def weigh(
    value: float,
    quality: float,
    momentum: float,
    options: float,
    macro: float,
    weights: ScoringWeights,
) -> Score:
    """Multiply raw factors by their weights."""
    return Score(
        value=value * weights.value,
        quality=quality * weights.quality,
        momentum=momentum * weights.momentum,
        options=options * weights.options,
        macro=macro * weights.macro,
    )


def explain(
    fundamentals: Fundamentals,
    prices: pd.DataFrame,
    options: OptionsSnapshot | None,
    macro: MacroSnapshot,
    weights: ScoringWeights,
) -> ScoreBreakdown:
    """Score one ticker and keep the unweighted components."""
    value = value_factor(fundamentals)
    quality = quality_factor(fundamentals)
    momentum = momentum_factor(prices)
    opt = options_factor(options)
    macro_fit = macro_sector_tilt(fundamentals.sector, macro)

    return ScoreBreakdown(
        value_raw=value,
        quality_raw=quality,
        momentum_raw=momentum,
        options_raw=opt,
        macro_raw=macro_fit,
        weights=weights,
        weighted=weigh(value, quality, momentum, opt, macro_fit, weights),
    )


def compute(
    fundamentals: Fundamentals,
    prices: pd.DataFrame,
    options: OptionsSnapshot | None,
    macro: MacroSnapshot,
    weights: ScoringWeights,
) -> Score:
    """Return the weighted score for one ticker."""
    return explain(fundamentals, prices, options, macro, weights).weighted
