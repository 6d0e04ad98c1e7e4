"""Tests for settings loaded from the environment."""

import os

import pytest

from storefront.config import (
    DEFAULT_CORS_ORIGINS,
    Settings,
    default_demo_coupons,
    parse_demo_coupons,
)
from storefront.errors import ValidationFailedError
from storefront.models import DemoCoupon

ENV_VARS = (
    "STOREFRONT_DATA_DIR",
    "STOREFRONT_FLAT_TAX",
    "STOREFRONT_CURRENCY",
    "STOREFRONT_DEDUP_WINDOW_SECONDS",
    "STOREFRONT_DEMO_COUPONS",
    "STOREFRONT_CORS_ORIGINS",
    "STOREFRONT_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch, temp_dir):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # keep load_dotenv away from any .env in the invoking directory
    monkeypatch.chdir(temp_dir)
    return monkeypatch


class TestParseDemoCoupons:
    def test_parses_and_normalizes_codes(self):
        table = parse_demo_coupons('{"welcome5": {"type": "fixed", "amount": 5}}')
        assert table == {"WELCOME5": DemoCoupon(type="fixed", amount=5)}

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2]",
            '{"X": {"type": "bogus", "amount": 5}}',
            '{"X": 5}',
        ],
    )
    def test_rejects_bad_tables(self, raw):
        with pytest.raises(ValidationFailedError):
            parse_demo_coupons(raw)


class TestSettingsFromEnv:
    def test_defaults(self, clean_env):
        settings = Settings.from_env()
        assert settings.flat_tax == 61.99
        assert settings.currency == "USD"
        assert settings.dedup_window_seconds == 30
        assert settings.demo_coupons == default_demo_coupons()
        assert settings.cors_origins == DEFAULT_CORS_ORIGINS
        assert settings.log_level == "INFO"

    def test_overrides(self, clean_env, temp_dir):
        clean_env.setenv("STOREFRONT_DATA_DIR", str(temp_dir))
        clean_env.setenv("STOREFRONT_FLAT_TAX", "0")
        clean_env.setenv("STOREFRONT_CURRENCY", "EUR")
        clean_env.setenv("STOREFRONT_DEDUP_WINDOW_SECONDS", "5")
        clean_env.setenv("STOREFRONT_DEMO_COUPONS", '{"TEST5": {"type": "percent", "amount": 5}}')
        clean_env.setenv("STOREFRONT_CORS_ORIGINS", "https://shop.example.com, https://admin.example.com")
        clean_env.setenv("STOREFRONT_LOG_LEVEL", "debug")

        settings = Settings.from_env()

        assert settings.data_dir == temp_dir
        assert settings.flat_tax == 0
        assert settings.currency == "EUR"
        assert settings.dedup_window_seconds == 5
        assert list(settings.demo_coupons) == ["TEST5"]
        assert settings.cors_origins == ("https://shop.example.com", "https://admin.example.com")
        assert settings.log_level == "DEBUG"

    def test_bad_number(self, clean_env):
        clean_env.setenv("STOREFRONT_FLAT_TAX", "lots")
        with pytest.raises(ValidationFailedError):
            Settings.from_env()

    def test_dotenv_file(self, clean_env, temp_dir):
        (temp_dir / ".env").write_text("STOREFRONT_CURRENCY=GBP\n")
        try:
            assert Settings.from_env().currency == "GBP"
        finally:
            # load_dotenv writes os.environ directly
            os.environ.pop("STOREFRONT_CURRENCY", None)
