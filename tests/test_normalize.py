"""Tests for cross-sectional normalization in screener.normalize."""

from __future__ import annotations

import math

import pandas as pd
import pytest

from conftest import RISK_ON_MACRO, SAMPLE_OPTIONS, make_fundamentals, make_prices
from screener import scoring
from screener.models import NormalizationMode, ScoringWeights, ScreenResult
from screener.normalize import build_feature_frame, normalize_and_rescore, zscores


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _result(ticker: str, fundamentals, prices=None, options=None, weights=None) -> ScreenResult:
    prices = prices if prices is not None else make_prices()
    weights = weights or ScoringWeights(0.4, 0.2, 0.15, 0.15, 0.1)
    return ScreenResult(
        ticker=ticker,
        fundamentals=fundamentals,
        prices=prices,
        score=scoring.compute(fundamentals, prices, options, RISK_ON_MACRO, weights),
        macro=RISK_ON_MACRO,
        options=options,
    )


def _value_only() -> ScoringWeights:
    return ScoringWeights(value=1, quality=0, momentum=0, options=0, macro=0)


# ---------------------------------------------------------------------------
# z-scores
# ---------------------------------------------------------------------------

class TestZScores:
    def test_population_statistics(self) -> None:
        frame = pd.DataFrame({"x": [1.0, 2.0, 3.0]})
        z = zscores(frame)
        sd = math.sqrt(2.0 / 3.0)  # ddof=0
        assert z["x"].tolist() == pytest.approx([-1.0 / sd, 0.0, 1.0 / sd])

    def test_constant_column_is_zero(self) -> None:
        z = zscores(pd.DataFrame({"x": [5.0, 5.0, 5.0]}))
        assert (z["x"] == 0.0).all()

    def test_clamped_to_three(self) -> None:
        frame = pd.DataFrame({"x": [0.0] * 19 + [1000.0]})
        z = zscores(frame)
        assert z["x"].max() == pytest.approx(3.0)
        assert z["x"].min() >= -3.0


# ---------------------------------------------------------------------------
# normalize_and_rescore
# ---------------------------------------------------------------------------

class TestNormalizeAndRescore:
    def test_none_mode_returns_input(self, weights) -> None:
        results = [_result("A", make_fundamentals()), _result("B", make_fundamentals(pe=30))]
        out = normalize_and_rescore(results, weights, NormalizationMode.NONE)
        assert all(a is b for a, b in zip(out, results))

    def test_single_result_unchanged(self, weights) -> None:
        results = [_result("A", make_fundamentals())]
        out = normalize_and_rescore(results, weights, NormalizationMode.GLOBAL)
        assert out[0].score == results[0].score

    def test_constant_universe_zeroes_value_quality_momentum(self, weights) -> None:
        f = make_fundamentals(sector="Technology")
        results = [_result(t, f) for t in ("A", "B", "C")]
        out = normalize_and_rescore(results, weights, NormalizationMode.GLOBAL)
        for r in out:
            assert r.score.value == 0.0
            assert r.score.quality == 0.0
            assert r.score.momentum == 0.0

    def test_constant_feature_contributes_zero(self) -> None:
        # Only P/E varies: value = mean(0, -zPe, 0, 0) = -zPe / 4.
        results = [
            _result("A", make_fundamentals(pe=10.0)),
            _result("B", make_fundamentals(pe=30.0)),
        ]
        out = normalize_and_rescore(results, _value_only(), NormalizationMode.GLOBAL)
        assert out[0].score.value == pytest.approx(0.25)
        assert out[1].score.value == pytest.approx(-0.25)

    def test_total_is_sum_of_components(self, weights) -> None:
        results = [
            _result("A", make_fundamentals(pe=10, roic=0.2), make_prices(30, 100, 120), SAMPLE_OPTIONS),
            _result("B", make_fundamentals(pe=25, roic=0.1), make_prices(30, 100, 90)),
            _result("C", make_fundamentals(pe=40, roic=0.05, sector="Energy"), make_prices(30, 100, 105)),
        ]
        for r in normalize_and_rescore(results, weights, NormalizationMode.GLOBAL):
            s = r.score
            assert s.total == pytest.approx(s.value + s.quality + s.momentum + s.options + s.macro)

    def test_options_and_macro_keep_raw_formulas(self, weights) -> None:
        results = [
            _result("A", make_fundamentals(pe=10, sector="Energy"), options=SAMPLE_OPTIONS),
            _result("B", make_fundamentals(pe=30, sector="Utilities")),
        ]
        out = normalize_and_rescore(results, weights, NormalizationMode.GLOBAL)
        for before, after in zip(results, out):
            assert after.score.options == pytest.approx(before.score.options)
            assert after.score.macro == pytest.approx(before.score.macro)

    def test_other_fields_carried_through(self, weights) -> None:
        results = [
            _result("A", make_fundamentals(pe=10), options=SAMPLE_OPTIONS),
            _result("B", make_fundamentals(pe=30)),
        ]
        out = normalize_and_rescore(results, weights, NormalizationMode.GLOBAL)
        for before, after in zip(results, out):
            assert after.ticker == before.ticker
            assert after.fundamentals is before.fundamentals
            assert after.prices is before.prices
            assert after.options is before.options
            assert after.macro is before.macro

    def test_momentum_sign_follows_trend(self, weights) -> None:
        f = make_fundamentals()
        results = [
            _result("UP", f, make_prices(30, 100, 130)),
            _result("DOWN", f, make_prices(30, 100, 80)),
        ]
        up, down = normalize_and_rescore(results, weights, NormalizationMode.GLOBAL)
        assert up.score.momentum > 0
        assert down.score.momentum < 0

    def test_non_finite_features_are_ignored(self) -> None:
        results = [
            _result("A", make_fundamentals(pe=math.nan, fcf_yield=0.02)),
            _result("B", make_fundamentals(pe=20.0, fcf_yield=0.06)),
            _result("C", make_fundamentals(pe=30.0, fcf_yield=0.04)),
        ]
        out = normalize_and_rescore(results, _value_only(), NormalizationMode.GLOBAL)
        for r in out:
            assert math.isfinite(r.score.value)


class TestSectorNormalization:
    def _universe(self) -> list[ScreenResult]:
        # Five energy names with P/E 10..14, two utilities with P/E 40 and 60.
        energy = [
            _result(f"E{i}", make_fundamentals(pe=10.0 + i, sector="Energy"))
            for i in range(5)
        ]
        utilities = [
            _result("U0", make_fundamentals(pe=40.0, sector=" utilities ")),
            _result("U1", make_fundamentals(pe=60.0, sector="UTILITIES")),
        ]
        return energy + utilities

    def test_small_sector_falls_back_to_global(self) -> None:
        universe = self._universe()
        weights = _value_only()
        sector = normalize_and_rescore(universe, weights, NormalizationMode.SECTOR, min_group_size=5)
        global_ = normalize_and_rescore(universe, weights, NormalizationMode.GLOBAL)

        # Utilities have two members (< 5): identical to global scores.
        for s, g in zip(sector[5:], global_[5:]):
            assert s.score.value == pytest.approx(g.score.value)

    def test_large_sector_uses_own_statistics(self) -> None:
        universe = self._universe()
        weights = _value_only()
        sector = normalize_and_rescore(universe, weights, NormalizationMode.SECTOR, min_group_size=5)

        pe = pd.Series([10.0, 11.0, 12.0, 13.0, 14.0])
        z = (pe - pe.mean()) / pe.std(ddof=0)
        expected = (-z / 4.0).tolist()
        assert [r.score.value for r in sector[:5]] == pytest.approx(expected)

    def test_momentum_stays_global_in_sector_mode(self) -> None:
        universe = [
            _result(f"E{i}", make_fundamentals(pe=10.0 + i, sector="Energy"), make_prices(30, 100, 100 + 5 * i))
            for i in range(5)
        ] + [
            _result("T0", make_fundamentals(sector="Technology"), make_prices(30, 100, 150)),
        ]
        momentum_only = ScoringWeights(value=0, quality=0, momentum=1, options=0, macro=0)
        sector = normalize_and_rescore(universe, momentum_only, NormalizationMode.SECTOR, min_group_size=5)
        global_ = normalize_and_rescore(universe, momentum_only, NormalizationMode.GLOBAL)
        assert [r.score.momentum for r in sector] == pytest.approx([r.score.momentum for r in global_])


class TestFeatureFrame:
    def test_columns_and_momentum(self) -> None:
        frame = build_feature_frame([
            _result("A", make_fundamentals(), make_prices(21, 100, 110)),
            _result("B", make_fundamentals(), make_prices(10, 100, 110)),
        ])
        assert list(frame.columns) == [
            "pe", "ev_to_ebitda", "fcf_yield", "pb",
            "roic", "gross_margin", "net_debt_to_ebitda", "momentum",
        ]
        assert frame.loc[0, "momentum"] == pytest.approx(0.10)
        assert frame.loc[1, "momentum"] == 0.0
