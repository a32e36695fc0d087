"""Tests for the YAML config loader and environment overrides."""

from __future__ import annotations

import pytest

from app.config import get_config, get_value, load_config
from screener.engine import ScreenerEngine
from data.providers.config_backed import ConfigFundamentalsProvider, ConfigMacroDataProvider
from data.providers.stooq import StooqPriceProvider


class TestLoadConfig:
    def test_reads_file_from_env_path(self, tmp_config) -> None:
        tmp_config("log_level: DEBUG\nscreener:\n  lookback_days: 120\n")
        assert load_config()["log_level"] == "DEBUG"
        assert get_config("screener") == {"lookback_days": 120}

    def test_missing_section_raises(self, tmp_config) -> None:
        tmp_config("{}\n")
        with pytest.raises(KeyError, match="screener"):
            get_config("screener")

    def test_empty_file_is_empty_config(self, tmp_config) -> None:
        tmp_config("")
        assert load_config() == {}

    def test_cached_until_reload(self, tmp_config) -> None:
        path = tmp_config("log_level: INFO\n")
        path.write_text("log_level: ERROR\n")
        assert load_config()["log_level"] == "INFO"
        assert load_config(reload=True)["log_level"] == "ERROR"


class TestEnvOverrides:
    def test_provider_names(self, tmp_config, monkeypatch) -> None:
        monkeypatch.setenv("SCREENER_PRICE_PROVIDER", "yahoo_daily")
        tmp_config("providers:\n  price: stooq\n  macro: config\n")
        assert get_value("providers.price") == "yahoo_daily"
        assert get_value("providers.macro") == "config"

    def test_integer_cast(self, tmp_config, monkeypatch) -> None:
        monkeypatch.setenv("SCREENER_MAX_CONCURRENCY", "4")
        tmp_config("{}\n")
        assert get_value("screener.max_concurrency") == 4

    def test_fred_key_creates_nested_section(self, tmp_config, monkeypatch) -> None:
        monkeypatch.setenv("FRED_API_KEY", "secret")
        tmp_config("{}\n")
        assert get_value("providers.fred.api_key") == "secret"


class TestGetValue:
    def test_nested_lookup(self, tmp_config) -> None:
        tmp_config("screener:\n  weights:\n    value: 0.5\n")
        assert get_value("screener.weights.value") == 0.5

    def test_default_for_missing_or_null(self, tmp_config) -> None:
        tmp_config("screener:\n  max_concurrency: null\n")
        assert get_value("screener.max_concurrency", 3) == 3
        assert get_value("screener.nope.deeper", "x") == "x"

    def test_non_mapping_in_path(self, tmp_config) -> None:
        tmp_config("log_level: INFO\n")
        assert get_value("log_level.sub", "d") == "d"


class TestEngineFromConfig:
    def test_builds_configured_providers(self, tmp_config, monkeypatch) -> None:
        for var in ("SCREENER_PRICE_PROVIDER", "SCREENER_FUNDAMENTALS_PROVIDER",
                    "SCREENER_MACRO_PROVIDER", "SCREENER_MAX_CONCURRENCY"):
            monkeypatch.delenv(var, raising=False)
        tmp_config(
            "providers:\n"
            "  price: stooq\n"
            "  fundamentals: config\n"
            "  macro: config\n"
            "  options: none\n"
            "screener:\n"
            "  max_concurrency: 3\n"
        )
        engine = ScreenerEngine.from_config()

        assert engine.concurrency == 3
        assert isinstance(engine._prices, StooqPriceProvider)
        assert isinstance(engine._fundamentals, ConfigFundamentalsProvider)
        assert isinstance(engine._macro, ConfigMacroDataProvider)

    def test_unknown_provider_name(self, tmp_config) -> None:
        tmp_config("providers:\n  price: nosuch\n")
        with pytest.raises(ValueError, match="nosuch"):
            ScreenerEngine.from_config()
