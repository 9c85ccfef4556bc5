"""Tests for shared/config.py."""

import logging
import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError as PydanticValidationError

from shared.config import Settings, configure_logging, get_settings


class TestSettings:
    def test_default_values(self):
        """Settings should have sensible defaults."""
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(_env_file=None)
        assert settings.app_name == "Billing Ledger"
        assert settings.app_version == "0.1.0"
        assert settings.debug is False
        assert settings.log_level == "INFO"
        assert settings.store_backend == "memory"
        assert settings.default_currency == "USD"
        assert settings.max_payment_methods_per_tenant == 5
        assert settings.invoice_number_max_attempts == 3
        assert settings.invoice_page_size_max == 100

    def test_loads_from_env(self):
        """Settings should load from environment variables."""
        with patch.dict(os.environ, {
            "DEBUG": "true",
            "MAX_PAYMENT_METHODS_PER_TENANT": "3",
            "DEFAULT_CURRENCY": "EUR",
        }):
            settings = Settings(_env_file=None)
            assert settings.debug is True
            assert settings.max_payment_methods_per_tenant == 3
            assert settings.default_currency == "EUR"

    def test_env_is_case_insensitive(self):
        with patch.dict(os.environ, {"store_backend": "supabase"}):
            settings = Settings(_env_file=None)
            assert settings.store_backend == "supabase"

    def test_rejects_unknown_store_backend(self):
        with patch.dict(os.environ, {"STORE_BACKEND": "firestore"}):
            with pytest.raises(PydanticValidationError):
                Settings(_env_file=None)

    def test_loads_supabase_config_from_env(self):
        """Settings should load Supabase configuration from environment variables."""
        with patch.dict(os.environ, {
            "SUPABASE_URL": "https://test.supabase.co",
            "SUPABASE_SERVICE_ROLE_KEY": "test-service-key",
        }):
            settings = Settings(_env_file=None)
            assert settings.supabase_url == "https://test.supabase.co"
            assert settings.supabase_service_role_key == "test-service-key"


class TestGetSettings:
    def test_get_settings_returns_settings_instance(self):
        """get_settings should return a Settings instance."""
        get_settings.cache_clear()
        settings = get_settings()
        assert isinstance(settings, Settings)

    def test_get_settings_caches(self):
        """get_settings should return cached instance."""
        get_settings.cache_clear()
        settings1 = get_settings()
        settings2 = get_settings()
        assert settings1 is settings2


class TestConfigureLogging:
    def test_applies_log_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging(Settings(_env_file=None, log_level="warning"))
            assert root.level == logging.WARNING
        finally:
            root.setLevel(previous)

    def test_debug_overrides_log_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging(Settings(_env_file=None, debug=True, log_level="ERROR"))
            assert root.level == logging.DEBUG
        finally:
            root.setLevel(previous)

    def test_unknown_level_falls_back_to_info(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging(Settings(_env_file=None, log_level="chatty"))
            assert root.level == logging.INFO
        finally:
            root.setLevel(previous)
