"""Stooq daily CSV provider for US equities and ETFs.

No API key is required.  Tickers are mapped to Stooq's ``{ticker}.us``
form and the full daily history is downloaded, then clipped to the
requested range.
"""

from __future__ import annotations

import io
import threading
import time
from datetime import date

import httpx
import pandas as pd
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.logging import get_logger
from data.providers.base import PriceDataProvider

logger = get_logger(__name__)

_BASE_URL = "https://stooq.com/q/d/l/"
_RATE_LIMIT_SECONDS = 0.5


class StooqPriceProvider(PriceDataProvider):
    """Fetch daily OHLCV bars from Stooq's CSV download endpoint."""

    def __init__(self) -> None:
        self._last_request_time: float = 0.0
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "stooq"

    def fetch_daily(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        symbol = self.to_stooq_symbol(ticker)
        logger.info("Stooq: fetching %s from %s to %s", symbol, start, end)

        text = self._request_csv(symbol)
        df = self.parse_csv(text)
        df = self._clip_range(df, start, end)

        logger.info("Stooq: %d bars for %s", len(df), symbol)
        return df

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def to_stooq_symbol(ticker: str) -> str:
        """``AAPL`` -> ``aapl.us``; tickers already suffixed are kept."""
        t = ticker.strip().lower()
        return t if t.endswith(".us") else f"{t}.us"

    @classmethod
    def parse_csv(cls, text: str) -> pd.DataFrame:
        """Parse Stooq's ``Date,Open,High,Low,Close,Volume`` CSV.

        Stooq answers unknown symbols with a plain "No data" body; that, and
        rows whose date does not parse, produce no bars.
        """
        if not text or not text.strip() or "Date" not in text.splitlines()[0]:
            return cls._make_dataframe([])

        raw = pd.read_csv(io.StringIO(text))
        raw["Date"] = pd.to_datetime(raw["Date"], format="%Y-%m-%d", errors="coerce")
        raw = raw.dropna(subset=["Date", "Close"])
        if "Volume" not in raw.columns:
            raw["Volume"] = 0.0

        rows = [
            [r.Date, r.Open, r.High, r.Low, r.Close, r.Volume]
            for r in raw.itertuples(index=False)
        ]
        return cls._make_dataframe(rows)

    @retry(
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _request_csv(self, symbol: str) -> str:
        self._rate_limit()
        with httpx.Client(timeout=30.0, follow_redirects=True) as client:
            resp = client.get(_BASE_URL, params={"s": symbol, "i": "d"})
            resp.raise_for_status()
        return resp.text

    def _rate_limit(self) -> None:
        """Block until at least ``_RATE_LIMIT_SECONDS`` since the last request."""
        with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < _RATE_LIMIT_SECONDS:
                time.sleep(_RATE_LIMIT_SECONDS - elapsed)
            self._last_request_time = time.monotonic()
