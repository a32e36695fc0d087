"""Local providers backed by the YAML config.

They let the screener run end-to-end without any external API: the
fundamentals provider answers every ticker from per-ticker overrides or a
default block, the macro provider returns fixed values, and the options
provider always reports "no options".
"""

from __future__ import annotations

from typing import Any, Mapping

from app.config import load_config
from app.logging import get_logger
from data.providers.base import FundamentalsProvider, MacroDataProvider, OptionsDataProvider
from screener.models import Fundamentals, MacroSnapshot, OptionsSnapshot

logger = get_logger(__name__)

_FUNDAMENTAL_DEFAULTS: dict[str, Any] = {
    "pe": 18.0,
    "ev_to_ebitda": 12.0,
    "fcf_yield": 0.04,
    "pb": 3.0,
    "roic": 0.12,
    "gross_margin": 0.45,
    "net_debt_to_ebitda": 1.5,
    "sector": "Technology",
}

_MACRO_DEFAULTS: dict[str, float] = {
    "ten_year_yield": 4.0,
    "two_ten_spread": 0.5,
    "cpi_yoy": 3.0,
    "pmi": 50.0,
    "dxy": 100.0,
    "wti": 70.0,
}


def _as_float(value: Any, fallback: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


class ConfigFundamentalsProvider(FundamentalsProvider):
    """Fundamentals from the ``fundamentals`` config section.

    Lookup order per field: ``fundamentals.<TICKER>``, then
    ``fundamentals.default``, then built-in placeholders.
    """

    def __init__(self, section: Mapping[str, Any] | None = None) -> None:
        if section is None:
            section = load_config().get("fundamentals", {}) or {}
        # Ticker keys are matched upper-cased.
        self._section = {str(k).upper(): v or {} for k, v in section.items()}

    def provider_name(self) -> str:
        return "config"

    def fetch_fundamentals(self, ticker: str) -> Fundamentals | None:
        if not ticker or not ticker.strip():
            raise ValueError("Ticker is required")
        t = ticker.strip().upper()

        merged = {
            **_FUNDAMENTAL_DEFAULTS,
            **self._section.get("DEFAULT", {}),
            **self._section.get(t, {}),
        }

        return Fundamentals(
            pe=_as_float(merged["pe"], _FUNDAMENTAL_DEFAULTS["pe"]),
            ev_to_ebitda=_as_float(merged["ev_to_ebitda"], _FUNDAMENTAL_DEFAULTS["ev_to_ebitda"]),
            fcf_yield=_as_float(merged["fcf_yield"], _FUNDAMENTAL_DEFAULTS["fcf_yield"]),
            pb=_as_float(merged["pb"], _FUNDAMENTAL_DEFAULTS["pb"]),
            roic=_as_float(merged["roic"], _FUNDAMENTAL_DEFAULTS["roic"]),
            gross_margin=_as_float(merged["gross_margin"], _FUNDAMENTAL_DEFAULTS["gross_margin"]),
            net_debt_to_ebitda=_as_float(
                merged["net_debt_to_ebitda"], _FUNDAMENTAL_DEFAULTS["net_debt_to_ebitda"],
            ),
            sector=str(merged["sector"] or _FUNDAMENTAL_DEFAULTS["sector"]),
        )


class ConfigMacroDataProvider(MacroDataProvider):
    """Fixed macro values from the ``macro`` config section."""

    def __init__(self, section: Mapping[str, Any] | None = None) -> None:
        if section is None:
            section = load_config().get("macro", {}) or {}
        self._section = dict(section)

    def provider_name(self) -> str:
        return "config"

    def fetch_snapshot(self) -> MacroSnapshot:
        values = {
            key: _as_float(self._section.get(key), fallback)
            for key, fallback in _MACRO_DEFAULTS.items()
        }
        logger.debug("Config macro snapshot: %s", values)
        return MacroSnapshot(**values)


class NullOptionsDataProvider(OptionsDataProvider):
    """Reports options data as unavailable for every ticker."""

    def provider_name(self) -> str:
        return "none"

    def fetch_snapshot(self, ticker: str) -> OptionsSnapshot | None:
        return None
