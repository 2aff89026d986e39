"""Tests for the settings layer."""

from zoneinfo import ZoneInfo

import pytest
from pydantic import ValidationError

from orderflow.core.config import EnvironmentMode, Settings


class TestSettings:

    def test_env_mode_is_case_insensitive(self):
        settings = Settings(env_mode="PRODUCTION", stripe_secret_key="sk_test_x")
        assert settings.env_mode == EnvironmentMode.PRODUCTION
        assert settings.use_real_services

    def test_invalid_env_mode(self):
        with pytest.raises(ValidationError):
            Settings(env_mode="qa")

    def test_timezone(self):
        assert Settings(restaurant_timezone="Europe/Vienna").timezone == ZoneInfo("Europe/Vienna")

    def test_unknown_timezone(self):
        with pytest.raises(ValidationError):
            Settings(restaurant_timezone="Mars/Olympus_Mons")

    def test_paths_follow_data_directory(self, tmp_path):
        settings = Settings(data_directory=str(tmp_path))
        assert settings.excel_path == tmp_path / "orders.xlsx"
        assert settings.prefill_path.parent == tmp_path

    def test_production_requires_stripe_key(self):
        assert "STRIPE_SECRET_KEY" in Settings(env_mode="production", stripe_secret_key="").validate_production_config()
        assert Settings(env_mode="development").validate_production_config() == []
