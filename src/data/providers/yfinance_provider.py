"""Yahoo Finance providers built on the yfinance library.

The price provider returns adjusted daily bars.  The fundamentals provider
derives the screener's metrics from ``Ticker.info``; that endpoint is
burst-sensitive, so it declares itself rate limited and the engine
serializes fundamentals requests while it is in use.
"""

from __future__ import annotations

import math
from datetime import date, timedelta, timezone
from typing import Any, Mapping

import pandas as pd
import yfinance as yf

from app.logging import get_logger
from data.providers.base import FundamentalsProvider, PriceDataProvider
from screener.models import Fundamentals

logger = get_logger(__name__)

# Yahoo sector names -> labels understood by the macro sector tilt.
_SECTOR_MAP: dict[str, str] = {
    "basic materials": "Materials",
    "consumer defensive": "Staples",
    "consumer cyclical": "Discretionary",
    "financial services": "Financials",
    "communication services": "Communication",
}


def _num(info: Mapping[str, Any], key: str) -> float | None:
    value = info.get(key)
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _ratio(numerator: float | None, denominator: float | None) -> float:
    if numerator is None or denominator is None or denominator == 0:
        return math.nan
    return numerator / denominator


class YFinancePriceProvider(PriceDataProvider):
    """Daily OHLCV via ``yfinance.Ticker.history``."""

    def provider_name(self) -> str:
        return "yfinance"

    def fetch_daily(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        logger.info("yfinance: fetching %s from %s to %s", ticker, start, end)

        # yfinance treats ``end`` as exclusive.
        hist = yf.Ticker(ticker).history(
            start=start.isoformat(),
            end=(end + timedelta(days=1)).isoformat(),
            interval="1d",
            auto_adjust=True,
        )
        if hist.empty:
            logger.warning("yfinance: no data returned for %s", ticker)
            return self._make_dataframe([])

        rows = []
        for ts, row in hist.iterrows():
            rows.append([
                ts.to_pydatetime().replace(tzinfo=timezone.utc),
                float(row["Open"]),
                float(row["High"]),
                float(row["Low"]),
                float(row["Close"]),
                float(row["Volume"]),
            ])

        logger.info("yfinance: %d bars for %s", len(rows), ticker)
        return self._make_dataframe(rows)


class YFinanceFundamentalsProvider(FundamentalsProvider):
    """Fundamentals derived from ``yfinance.Ticker.info``.

    * FCF yield = ``freeCashflow / marketCap``
    * net debt / EBITDA = ``(totalDebt - totalCash) / ebitda``
    * ROIC is approximated by ``returnOnAssets`` (Yahoo does not publish it)

    Metrics Yahoo does not report come back as NaN.
    """

    rate_limited = True

    def __init__(self, request_delay: float = 1.0) -> None:
        self.request_delay = request_delay

    def provider_name(self) -> str:
        return "yfinance"

    def fetch_fundamentals(self, ticker: str) -> Fundamentals | None:
        info = yf.Ticker(ticker).info or {}
        return self.from_info(info)

    @staticmethod
    def normalize_sector(sector: str | None) -> str:
        if not sector:
            return "Unknown"
        return _SECTOR_MAP.get(sector.strip().lower(), sector.strip())

    @classmethod
    def from_info(cls, info: Mapping[str, Any]) -> Fundamentals | None:
        """Map a ``Ticker.info`` dict to :class:`Fundamentals`.

        Returns None when Yahoo has no market data for the symbol.
        """
        market_cap = _num(info, "marketCap")
        if market_cap is None:
            return None

        total_debt = _num(info, "totalDebt")
        total_cash = _num(info, "totalCash") or 0.0
        net_debt = None if total_debt is None else total_debt - total_cash

        def _or_nan(key: str) -> float:
            value = _num(info, key)
            return math.nan if value is None else value

        return Fundamentals(
            pe=_or_nan("trailingPE"),
            ev_to_ebitda=_or_nan("enterpriseToEbitda"),
            fcf_yield=_ratio(_num(info, "freeCashflow"), market_cap),
            pb=_or_nan("priceToBook"),
            roic=_or_nan("returnOnAssets"),
            gross_margin=_or_nan("grossMargins"),
            net_debt_to_ebitda=_ratio(net_debt, _num(info, "ebitda")),
            sector=cls.normalize_sector(info.get("sector")),
        )
