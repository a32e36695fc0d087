"""Abstract interfaces for the four data capabilities the screener consumes.

Each capability is a small, flat interface with one implementation per data
source.  Every implementation may be slow, rate-limited or fail; the engine
classifies failures, providers own any retry policy.
"""

from __future__ import annotations

import abc
from datetime import date, datetime
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from screener.models import Fundamentals, MacroSnapshot, OptionsSnapshot


class PriceDataProvider(abc.ABC):
    """Daily OHLCV bars for one ticker.

    Implementations return a :class:`pandas.DataFrame` with the following
    columns, sorted by ``timestamp`` ascending:

    * ``timestamp`` -- timezone-aware UTC :class:`datetime64[ns, UTC]`
    * ``open``      -- float64
    * ``high``      -- float64
    * ``low``       -- float64
    * ``close``     -- float64
    * ``volume``    -- float64

    An empty frame means the source has no bars for the range.
    """

    # Canonical column order shared by all providers.
    COLUMNS: list[str] = ["timestamp", "open", "high", "low", "close", "volume"]

    @abc.abstractmethod
    def fetch_daily(self, ticker: str, start: date, end: date) -> pd.DataFrame:
        """Fetch daily bars for *ticker* over [*start*, *end*] inclusive."""
        ...

    @abc.abstractmethod
    def provider_name(self) -> str:
        """Return a short, unique identifier for this provider (e.g. ``"stooq"``)."""
        ...

    # ------------------------------------------------------------------
    # Helpers available to all providers
    # ------------------------------------------------------------------

    @staticmethod
    def _make_dataframe(rows: list[list], tz_aware: bool = True) -> pd.DataFrame:
        """Build a standardised DataFrame from raw row data.

        Args:
            rows: List of ``[timestamp, open, high, low, close, volume]`` lists.
                  ``timestamp`` may be a :class:`datetime`, Unix-seconds int/float,
                  or any value convertible by :func:`pd.to_datetime`.
            tz_aware: If *True* (default), localise the timestamp column to UTC.

        Returns:
            A sorted DataFrame with correct dtypes.
        """
        if not rows:
            return pd.DataFrame(columns=PriceDataProvider.COLUMNS)

        df = pd.DataFrame(rows, columns=PriceDataProvider.COLUMNS)

        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=tz_aware)

        for col in ("open", "high", "low", "close", "volume"):
            df[col] = pd.to_numeric(df[col], errors="coerce")

        df = df.sort_values("timestamp").reset_index(drop=True)
        return df

    @staticmethod
    def _clip_range(df: pd.DataFrame, start: date, end: date) -> pd.DataFrame:
        """Keep rows whose calendar date falls within [*start*, *end*]."""
        if df.empty:
            return df
        days = df["timestamp"].dt.date
        mask = (days >= start) & (days <= end)
        return df.loc[mask].reset_index(drop=True)

    @staticmethod
    def _as_datetime(d: date) -> datetime:
        return datetime(d.year, d.month, d.day)


class FundamentalsProvider(abc.ABC):
    """Point-in-time fundamentals for one ticker.

    Attributes:
        rate_limited: When True the engine runs one ticker at a time and
            waits :attr:`request_delay` seconds after every fetch.
        request_delay: Seconds to wait after each fetch when rate limited.
    """

    rate_limited: bool = False
    request_delay: float = 0.0

    @abc.abstractmethod
    def fetch_fundamentals(self, ticker: str) -> Fundamentals | None:
        """Return fundamentals for *ticker*, or None when the source has none."""
        ...

    @abc.abstractmethod
    def provider_name(self) -> str:
        ...


class MacroDataProvider(abc.ABC):
    """The run-wide macro snapshot."""

    @abc.abstractmethod
    def fetch_snapshot(self) -> MacroSnapshot:
        ...

    @abc.abstractmethod
    def provider_name(self) -> str:
        ...


class OptionsDataProvider(abc.ABC):
    """Options-market summary for one ticker.  None is an expected answer."""

    @abc.abstractmethod
    def fetch_snapshot(self, ticker: str) -> OptionsSnapshot | None:
        ...

    @abc.abstractmethod
    def provider_name(self) -> str:
        ...
