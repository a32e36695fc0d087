"""Cross-sectional z-score normalization over one run's result set.

Value, Quality and Momentum are rebuilt from z-scores computed across the
included tickers (optionally per sector); Options and Macro keep their raw
formulas.  Momentum always uses global statistics, even in sector mode.
"""

from __future__ import annotations

import dataclasses
import logging
import math
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from screener.models import NormalizationMode, ScreenResult, ScoringWeights
from screener.scoring import macro_sector_tilt, momentum_factor, options_factor, weigh

logger = logging.getLogger(__name__)

Z_CLAMP: float = 3.0
_MIN_STD: float = 1e-12

FUNDAMENTAL_FEATURES: list[str] = [
    "pe", "ev_to_ebitda", "fcf_yield", "pb",
    "roic", "gross_margin", "net_debt_to_ebitda",
]
FEATURES: list[str] = FUNDAMENTAL_FEATURES + ["momentum"]


def _clamp(x: float) -> float:
    return max(-Z_CLAMP, min(Z_CLAMP, x))


def _finite_mean(values: Iterable[float]) -> float:
    """Average of the finite values; 0.0 when none are finite."""
    finite = [v for v in values if math.isfinite(v)]
    if not finite:
        return 0.0
    return sum(finite) / len(finite)


def _sector_key(sector: str) -> str:
    return (sector or "").strip().lower()


def build_feature_frame(results: Sequence[ScreenResult]) -> pd.DataFrame:
    """One row per result, one column per normalization feature."""
    rows = []
    for r in results:
        f = r.fundamentals
        rows.append({
            "pe": f.pe,
            "ev_to_ebitda": f.ev_to_ebitda,
            "fcf_yield": f.fcf_yield,
            "pb": f.pb,
            "roic": f.roic,
            "gross_margin": f.gross_margin,
            "net_debt_to_ebitda": f.net_debt_to_ebitda,
            "momentum": momentum_factor(r.prices),
        })
    return pd.DataFrame(rows, columns=FEATURES, dtype="float64")


def zscores(frame: pd.DataFrame) -> pd.DataFrame:
    """Population z-scores per column, clamped to +/-3.

    Columns whose standard deviation is at or below 1e-12 (or undefined)
    yield 0.0 for every row.
    """
    mean = frame.mean()
    std = frame.std(ddof=0)
    z = pd.DataFrame(0.0, index=frame.index, columns=frame.columns)
    for col in frame.columns:
        sd = std[col]
        if sd > _MIN_STD:
            z[col] = (frame[col] - mean[col]) / sd
    return z.clip(lower=-Z_CLAMP, upper=Z_CLAMP)


def normalize_and_rescore(
    results: Sequence[ScreenResult],
    weights: ScoringWeights,
    mode: NormalizationMode,
    min_group_size: int = 5,
) -> list[ScreenResult]:
    """Return *results* with scores rebuilt from cross-sectional z-scores.

    Parameters
    ----------
    results : sequence of ScreenResult
        The complete included set of one run.
    weights : ScoringWeights
        The weights the run was scored with.
    mode : NormalizationMode
        ``GLOBAL`` uses run-wide statistics; ``SECTOR`` uses per-sector
        statistics for sectors with at least *min_group_size* members and
        global statistics for everyone else.
    min_group_size : int
        Minimum sector membership for sector statistics to apply.
    """
    if mode is NormalizationMode.NONE or len(results) < 2:
        return list(results)

    features = build_feature_frame(results)
    z = zscores(features)

    if mode is NormalizationMode.SECTOR:
        sectors = pd.Series([_sector_key(r.fundamentals.sector) for r in results])
        for sector, members in sectors.groupby(sectors).groups.items():
            if len(members) < min_group_size:
                logger.debug(
                    "Sector '%s' has %d members (< %d); using global statistics",
                    sector, len(members), min_group_size,
                )
                continue
            group_z = zscores(features.loc[members, FUNDAMENTAL_FEATURES])
            z.loc[members, FUNDAMENTAL_FEATURES] = group_z

    rescored: list[ScreenResult] = []
    for i, r in enumerate(results):
        row = z.iloc[i]
        value = _clamp(_finite_mean([
            row["fcf_yield"], -row["pe"], -row["ev_to_ebitda"], -row["pb"],
        ]))
        quality = _clamp(_finite_mean([
            row["roic"], row["gross_margin"], -row["net_debt_to_ebitda"],
        ]))
        momentum = row["momentum"]
        momentum = _clamp(momentum) if np.isfinite(momentum) else 0.0

        score = weigh(
            value,
            quality,
            momentum,
            options_factor(r.options),
            macro_sector_tilt(r.fundamentals.sector, r.macro),
            weights,
        )
        rescored.append(dataclasses.replace(r, score=score))

    logger.info("Normalized %d results (mode=%s)", len(rescored), mode.value)
    return rescored
