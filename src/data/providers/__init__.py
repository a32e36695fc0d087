"""Data providers for the four screener capabilities.

Use the ``get_*_provider`` helpers to obtain an instance by name::

    from data.providers import get_price_provider

    provider = get_price_provider("stooq")
    df = provider.fetch_daily("AAPL", start, end)
"""

from __future__ import annotations

from typing import Callable, TypeVar

from app.config import get_value
from data.providers.base import (
    FundamentalsProvider,
    MacroDataProvider,
    OptionsDataProvider,
    PriceDataProvider,
)
from data.providers.config_backed import (
    ConfigFundamentalsProvider,
    ConfigMacroDataProvider,
    NullOptionsDataProvider,
)
from data.providers.fred import FredMacroDataProvider
from data.providers.polygon import PolygonOptionsDataProvider
from data.providers.stooq import StooqPriceProvider
from data.providers.yahoo_daily import YahooDailyPriceProvider
from data.providers.yfinance_provider import (
    YFinanceFundamentalsProvider,
    YFinancePriceProvider,
)

T = TypeVar("T")

# Registries mapping provider name -> factory.
PRICE_PROVIDERS: dict[str, Callable[[], PriceDataProvider]] = {
    "stooq": StooqPriceProvider,
    "yahoo_daily": YahooDailyPriceProvider,
    "yfinance": YFinancePriceProvider,
}

FUNDAMENTALS_PROVIDERS: dict[str, Callable[[], FundamentalsProvider]] = {
    "config": ConfigFundamentalsProvider,
    "yfinance": lambda: YFinanceFundamentalsProvider(
        request_delay=float(get_value("providers.yfinance.request_delay", 1.0)),
    ),
}

MACRO_PROVIDERS: dict[str, Callable[[], MacroDataProvider]] = {
    "config": ConfigMacroDataProvider,
    "fred": FredMacroDataProvider,
}

OPTIONS_PROVIDERS: dict[str, Callable[[], OptionsDataProvider]] = {
    "none": NullOptionsDataProvider,
    "polygon": PolygonOptionsDataProvider,
}


def _lookup(registry: dict[str, Callable[[], T]], kind: str, name: str) -> T:
    factory = registry.get(name.strip().lower())
    if factory is None:
        available = ", ".join(sorted(registry.keys()))
        raise ValueError(
            f"Unknown {kind} provider '{name}'. Available providers: {available}"
        )
    return factory()


def get_price_provider(name: str) -> PriceDataProvider:
    """Instantiate a price provider by name (e.g. ``"stooq"``).

    Raises:
        ValueError: If no provider is registered under *name*.
    """
    return _lookup(PRICE_PROVIDERS, "price", name)


def get_fundamentals_provider(name: str) -> FundamentalsProvider:
    return _lookup(FUNDAMENTALS_PROVIDERS, "fundamentals", name)


def get_macro_provider(name: str) -> MacroDataProvider:
    return _lookup(MACRO_PROVIDERS, "macro", name)


def get_options_provider(name: str) -> OptionsDataProvider:
    return _lookup(OPTIONS_PROVIDERS, "options", name)


__all__ = [
    "ConfigFundamentalsProvider",
    "ConfigMacroDataProvider",
    "FredMacroDataProvider",
    "FundamentalsProvider",
    "MacroDataProvider",
    "NullOptionsDataProvider",
    "OptionsDataProvider",
    "PolygonOptionsDataProvider",
    "PriceDataProvider",
    "StooqPriceProvider",
    "YFinanceFundamentalsProvider",
    "YFinancePriceProvider",
    "YahooDailyPriceProvider",
    "get_fundamentals_provider",
    "get_macro_provider",
    "get_options_provider",
    "get_price_provider",
]
