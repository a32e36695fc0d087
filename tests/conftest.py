"""Shared test fixtures for the factor screener.

Provides deterministic OHLCV frames, sample fundamentals/macro snapshots
and in-memory fake providers so engine tests never touch the network.
"""

from __future__ import annotations

import threading
from datetime import date
from pathlib import Path
from typing import Callable

import numpy as np
import pandas as pd
import pytest

from data.providers.base import (
    FundamentalsProvider,
    MacroDataProvider,
    OptionsDataProvider,
    PriceDataProvider,
)
from screener.models import (
    Fundamentals,
    MacroSnapshot,
    OptionsSnapshot,
    ScoringWeights,
)


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_prices(n: int = 30, start: float = 100.0, end: float = 110.0) -> pd.DataFrame:
    """Linear close series from *start* to *end* over *n* daily bars."""
    close = np.linspace(start, end, n) if n > 1 else np.full(n, start)
    timestamps = pd.date_range("2024-01-01", periods=n, freq="D", tz="UTC")
    return pd.DataFrame(
        {
            "timestamp": timestamps,
            "open": close,
            "high": close,
            "low": close,
            "close": close,
            "volume": np.full(n, 1_000_000.0),
        }
    )


def make_fundamentals(
    pe: float = 20.0,
    ev_to_ebitda: float = 12.0,
    fcf_yield: float = 0.05,
    pb: float = 3.0,
    roic: float = 0.15,
    gross_margin: float = 0.40,
    net_debt_to_ebitda: float = 1.0,
    sector: str = "Technology",
) -> Fundamentals:
    return Fundamentals(
        pe=pe,
        ev_to_ebitda=ev_to_ebitda,
        fcf_yield=fcf_yield,
        pb=pb,
        roic=roic,
        gross_margin=gross_margin,
        net_debt_to_ebitda=net_debt_to_ebitda,
        sector=sector,
    )


RISK_ON_MACRO = MacroSnapshot(
    ten_year_yield=4.0, two_ten_spread=0.5, cpi_yoy=2.5, pmi=55.0, dxy=100.0, wti=80.0,
)

SAMPLE_OPTIONS = OptionsSnapshot(
    put_call_ratio=0.7, implied_vol_rank=40.0, call_volume_to_avg_20d=1.5, near_otm_call_oi_delta=0.1,
)


# ---------------------------------------------------------------------------
# Fake providers
# ---------------------------------------------------------------------------

class FakePrices(PriceDataProvider):
    """Serves canned frames; raises for tickers listed in *errors*."""

    def __init__(
        self,
        frames: dict[str, pd.DataFrame] | None = None,
        default: pd.DataFrame | None = None,
        errors: set[str] | None = None,
        hook: Callable[[str], None] | None = None,
    ) -> None:
        self.frames = frames or {}
        self.default = default if default is not None else make_prices()
        self.errors = errors or set()
        self.hook = hook
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "fake"

    def fetch_daily(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        with self._lock:
            self.calls.append(ticker)
        if self.hook is not None:
            self.hook(ticker)
        if ticker in self.errors:
            raise RuntimeError(f"price feed down for {ticker}")
        return self.frames.get(ticker, self.default)


class FakeFundamentals(FundamentalsProvider):
    """Serves canned fundamentals; None for tickers in *missing*."""

    def __init__(
        self,
        data: dict[str, Fundamentals] | None = None,
        default: Fundamentals | None = None,
        errors: set[str] | None = None,
        missing: set[str] | None = None,
        rate_limited: bool = False,
        request_delay: float = 0.0,
        hook: Callable[[str], None] | None = None,
    ) -> None:
        self.data = data or {}
        self.default = default or make_fundamentals()
        self.errors = errors or set()
        self.missing = missing or set()
        self.rate_limited = rate_limited
        self.request_delay = request_delay
        self.hook = hook
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "fake"

    def fetch_fundamentals(self, ticker: str) -> Fundamentals | None:
        with self._lock:
            self.calls.append(ticker)
        if self.hook is not None:
            self.hook(ticker)
        if ticker in self.errors:
            raise RuntimeError(f"fundamentals feed down for {ticker}")
        if ticker in self.missing:
            return None
        return self.data.get(ticker, self.default)


class FakeMacro(MacroDataProvider):
    def __init__(self, snapshot: MacroSnapshot = RISK_ON_MACRO, fail: bool = False) -> None:
        self.snapshot = snapshot
        self.fail = fail
        self.calls = 0

    def provider_name(self) -> str:
        return "fake"

    def fetch_snapshot(self) -> MacroSnapshot:
        self.calls += 1
        if self.fail:
            raise RuntimeError("macro feed down")
        return self.snapshot


class FakeOptions(OptionsDataProvider):
    def __init__(
        self,
        data: dict[str, OptionsSnapshot] | None = None,
        errors: set[str] | None = None,
    ) -> None:
        self.data = data or {}
        self.errors = errors or set()
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "fake"

    def fetch_snapshot(self, ticker: str) -> OptionsSnapshot | None:
        with self._lock:
            self.calls.append(ticker)
        if ticker in self.errors:
            raise RuntimeError(f"options feed down for {ticker}")
        return self.data.get(ticker)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def weights() -> ScoringWeights:
    return ScoringWeights(value=0.4, quality=0.2, momentum=0.15, options=0.15, macro=0.1)


@pytest.fixture()
def uptrend() -> pd.DataFrame:
    """30 bars rising linearly from 100 to 110."""
    return make_prices(30, 100.0, 110.0)


@pytest.fixture()
def tmp_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[str], Path]:
    """Point the config loader at a temporary YAML file.

    Returns a writer: call it with YAML text to (re)write the file.  The
    cached config is reset for the test and restored afterwards.
    """
    import app.config as config_module

    path = tmp_path / "config.yaml"
    path.write_text("{}\n")
    monkeypatch.setenv("SCREENER_CONFIG", str(path))
    monkeypatch.setattr(config_module, "_instance", None)

    def write(text: str) -> Path:
        path.write_text(text)
        config_module.load_config(reload=True)
        return path

    return write
