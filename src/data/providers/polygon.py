"""Polygon.io options snapshot provider.

Requires an API key (``providers.polygon.api_key`` or ``POLYGON_API_KEY``).
Only the put/call volume ratio is derivable from the snapshot endpoint on
every plan; the other snapshot fields are reported as 0.
"""

from __future__ import annotations

import threading
import time
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
from data.providers.base import OptionsDataProvider
from screener.models import OptionsSnapshot

logger = get_logger(__name__)

_BASE_URL = "https://api.polygon.io/v3/snapshot/options"
_CACHE_TTL_SECONDS = 30 * 60
_PAGE_LIMIT = 250


def _nested_number(item: dict[str, Any], obj: str, prop: str) -> float | None:
    block = item.get(obj)
    if not isinstance(block, dict):
        return None
    raw = block.get(prop)
    if raw is None or isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


class PolygonOptionsDataProvider(OptionsDataProvider):
    """Summarise the Polygon options chain snapshot for one underlying."""

    def __init__(self, api_key: str | None = None) -> None:
        self._api_key = (api_key or get_value("providers.polygon.api_key", "") or "").strip()
        self._cache: dict[str, tuple[float, OptionsSnapshot]] = {}
        self._lock = threading.Lock()

    def provider_name(self) -> str:
        return "polygon"

    def fetch_snapshot(self, ticker: str) -> OptionsSnapshot | None:
        underlying = (ticker or "").strip().upper()
        if not underlying:
            raise ValueError("Ticker is required")

        if not self._api_key:
            logger.warning("Polygon options requested but providers.polygon.api_key is missing")
            return None

        with self._lock:
            hit = self._cache.get(underlying)
        if hit is not None and time.monotonic() - hit[0] < _CACHE_TTL_SECONDS:
            return hit[1]

        with httpx.Client(timeout=30.0) as client:
            payload = self._request_snapshot(client, underlying)
        if payload is None:
            return None

        results = payload.get("results")
        if not isinstance(results, list):
            logger.warning("Polygon options snapshot returned no results for %s", underlying)
            return None

        snapshot = self.summarize(results)
        with self._lock:
            self._cache[underlying] = (time.monotonic(), snapshot)
        logger.info(
            "Fetched Polygon options snapshot for %s (put/call=%.3f)",
            underlying, snapshot.put_call_ratio,
        )
        return snapshot

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def summarize(results: list[Any]) -> OptionsSnapshot:
        """Put/call volume ratio over the contracts in *results*.

        Volume is read from ``day.volume``, else ``session.volume``.  The
        ratio is 1.0 when no call volume traded.
        """
        call_vol = 0.0
        put_vol = 0.0
        for item in results:
            if not isinstance(item, dict):
                continue
            details = item.get("details")
            kind = str(details.get("contract_type", "")).lower() if isinstance(details, dict) else ""
            if kind not in ("call", "put"):
                continue
            vol = _nested_number(item, "day", "volume")
            if vol is None:
                vol = _nested_number(item, "session", "volume")
            if kind == "call":
                call_vol += vol or 0.0
            else:
                put_vol += vol or 0.0

        return OptionsSnapshot(
            put_call_ratio=put_vol / call_vol if call_vol > 0 else 1.0,
            implied_vol_rank=0.0,
            call_volume_to_avg_20d=0.0,
            near_otm_call_oi_delta=0.0,
        )

    @retry(
        retry=retry_if_exception_type((httpx.HTTPStatusError, httpx.TransportError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    def _request_snapshot(self, client: httpx.Client, underlying: str) -> dict[str, Any] | None:
        """Raw snapshot JSON, or None when the key lacks access to the endpoint."""
        resp = client.get(
            f"{_BASE_URL}/{underlying}",
            params={"limit": _PAGE_LIMIT, "apiKey": self._api_key},
            headers={"Accept": "application/json"},
        )
        if resp.status_code in (401, 403):
            logger.warning(
                "Polygon options request for %s refused: %d %s",
                underlying, resp.status_code, resp.text[:500],
            )
            return None
        resp.raise_for_status()
        return resp.json()
