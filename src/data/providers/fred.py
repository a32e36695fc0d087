"""Macro snapshot assembled from FRED (Federal Reserve Economic Data) series.

Series used:

* ``DGS10``      -- 10-year Treasury yield
* ``DGS2``       -- 2-year Treasury yield (for the 2s10s spread)
* ``CPIAUCSL``   -- CPI index, YoY computed from 13 monthly observations
* ``NAPM``       -- ISM manufacturing PMI
* ``DTWEXBGS``   -- broad trade-weighted dollar index
* ``DCOILWTICO`` -- WTI crude spot
"""

from __future__ import annotations

from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from app.config import get_value
from app.logging import get_logger
from data.providers.base import MacroDataProvider
from screener.models import MacroSnapshot

logger = get_logger(__name__)

_BASE_URL = "https://api.stlouisfed.org/fred/series/observations"


def _parse_value(raw: Any) -> float | None:
    """FRED encodes missing observations as ``"."``."""
    if raw is None:
        return None
    text = str(raw).strip()
    if not text or text == ".":
        return None
    try:
        return float(text)
    except ValueError:
        return None


class FredMacroDataProvider(MacroDataProvider):
    """Fetch the latest macro readings from the FRED observations API."""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = (api_key or get_value("providers.fred.api_key", "") or "").strip()

    def provider_name(self) -> str:
        return "fred"

    def fetch_snapshot(self) -> MacroSnapshot:
        if not self._api_key:
            raise RuntimeError("FRED API key missing (providers.fred.api_key / FRED_API_KEY)")

        with httpx.Client(timeout=30.0) as client:
            dgs10 = self._latest(client, "DGS10")
            dgs2 = self._latest(client, "DGS2")
            cpi = self._values(client, "CPIAUCSL", limit=24)
            pmi = self._latest(client, "NAPM")
            dxy = self._latest(client, "DTWEXBGS")
            wti = self._latest(client, "DCOILWTICO")

        spread = dgs10 - dgs2 if dgs10 is not None and dgs2 is not None else 0.0

        snapshot = MacroSnapshot(
            ten_year_yield=dgs10 or 0.0,
            two_ten_spread=spread,
            cpi_yoy=self.cpi_yoy(cpi),
            pmi=pmi or 0.0,
            dxy=dxy or 0.0,
            wti=wti or 0.0,
        )
        logger.info("Fetched macro snapshot from FRED: %s", snapshot)
        return snapshot

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def cpi_yoy(values_desc: list[float]) -> float:
        """Year-over-year CPI change in percent (3.0 means 3%).

        ``values_desc`` is newest first.  Returns 0.0 without 13 points or
        with a non-positive base.
        """
        if len(values_desc) < 13:
            return 0.0
        latest, prior = values_desc[0], values_desc[12]
        if prior <= 0:
            return 0.0
        return (latest / prior - 1.0) * 100.0

    def _latest(self, client: httpx.Client, series_id: str) -> float | None:
        values = self._values(client, series_id, limit=10)
        return values[0] if values else None

    @retry(
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _values(self, client: httpx.Client, series_id: str, limit: int) -> list[float]:
        """Parsed observations for *series_id*, newest first, missing ones dropped."""
        params = {
            "series_id": series_id,
            "api_key": self._api_key,
            "file_type": "json",
            "sort_order": "desc",
            "limit": limit,
        }
        resp = client.get(_BASE_URL, params=params)
        resp.raise_for_status()

        observations = resp.json().get("observations", [])
        parsed = (_parse_value(o.get("value")) for o in observations)
        return [v for v in parsed if v is not None]
