"""Data layer -- provider interfaces and their implementations.

Quick usage::

    from data import get_price_provider

    provider = get_price_provider("stooq")
    df = provider.fetch_daily("AAPL", start, end)
"""

from data.providers import (
    get_fundamentals_provider,
    get_macro_provider,
    get_options_provider,
    get_price_provider,
)

__all__ = [
    "get_fundamentals_provider",
    "get_macro_provider",
    "get_options_provider",
    "get_price_provider",
]
