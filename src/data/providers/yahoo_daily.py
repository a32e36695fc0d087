"""Yahoo Finance public chart API provider for daily equity bars."""

from __future__ import annotations

import threading
import time
from datetime import date, datetime, timedelta, timezone
from typing import Any

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

_BASE_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{symbol}"

_RATE_LIMIT_SECONDS = 1.0

_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36"
)


class YahooDailyPriceProvider(PriceDataProvider):
    """Fetch daily OHLCV candles from the Yahoo Finance chart API.

    Works with US equities (``AAPL``), Canadian listings (``SHOP.TO``),
    ETFs and indices.  No authentication is required.
    """

    def __init__(self) -> None:
        self._last_request_time: float = 0.0
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "yahoo_daily"

    def fetch_daily(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        period1 = self._to_unix(self._as_datetime(start))
        # period2 is exclusive on Yahoo's side.
        period2 = self._to_unix(self._as_datetime(end) + timedelta(days=1))

        logger.info("Yahoo: fetching %s from %s to %s", ticker, start, end)

        data = self._request_chart(ticker, period1, period2)
        if data is None:
            logger.warning("Yahoo: no data returned for %s", ticker)
            return self._make_dataframe([])

        rows = self.parse_chart_response(data)
        df = self._clip_range(self._make_dataframe(rows), start, end)

        logger.info("Yahoo: %d bars for %s", len(df), ticker)
        return df

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_unix(dt: datetime) -> int:
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return int(dt.timestamp())

    @retry(
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=1, max=30),
        reraise=True,
    )
    def _request_chart(
        self,
        symbol: str,
        period1: int,
        period2: int,
    ) -> dict[str, Any] | None:
        """Execute one chart API request with rate-limiting and retries.

        Returns:
            The first element of the ``chart.result`` array, or ``None`` when
            Yahoo reports an error or an empty result.
        """
        self._rate_limit()

        url = _BASE_URL.format(symbol=symbol)
        params: dict[str, Any] = {
            "period1": period1,
            "period2": period2,
            "interval": "1d",
            "includePrePost": "false",
            "events": "",
        }
        headers = {"User-Agent": _USER_AGENT}

        with httpx.Client(timeout=30.0, follow_redirects=True) as client:
            resp = client.get(url, params=params, headers=headers)
            resp.raise_for_status()

        chart = resp.json().get("chart", {})
        error = chart.get("error")
        if error:
            logger.error("Yahoo API error for %s: %s", symbol, error)
            return None

        results = chart.get("result")
        if not results:
            return None
        return results[0]

    @staticmethod
    def parse_chart_response(data: dict[str, Any]) -> list[list]:
        """Extract ``[timestamp, open, high, low, close, volume]`` rows.

        Candles with any missing price (holidays, halted sessions) are dropped.
        """
        timestamps = data.get("timestamp")
        if not timestamps:
            return []

        quote_list = data.get("indicators", {}).get("quote", [])
        if not quote_list:
            return []

        quote = quote_list[0]
        columns = [quote.get(k, []) for k in ("open", "high", "low", "close", "volume")]

        rows: list[list] = []
        for i, ts in enumerate(timestamps):
            o, h, lo, c, v = (col[i] if i < len(col) else None for col in columns)
            if any(val is None for val in (o, h, lo, c)):
                continue
            rows.append([
                datetime.fromtimestamp(ts, tz=timezone.utc),
                float(o),
                float(h),
                float(lo),
                float(c),
                float(v) if v is not None else 0.0,
            ])
        return rows

    def _rate_limit(self) -> None:
        """Block until at least ``_RATE_LIMIT_SECONDS`` since the last request."""
        with self._lock:
            elapsed = time.monotonic() - self._last_request_time
            if elapsed < _RATE_LIMIT_SECONDS:
                time.sleep(_RATE_LIMIT_SECONDS - elapsed)
            self._last_request_time = time.monotonic()
