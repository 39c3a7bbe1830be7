import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

import cloudfile.utils.env_config
from cloudfile.utils.env_config import AppSettings, get_env_bool, get_env_int, get_settings


class TestAppSettings:
    """Test suite for AppSettings class."""

    def test_app_settings_default_values(self) -> None:
        """Test that AppSettings has correct default values."""
        with patch.dict(os.environ, {}, clear=True):
            settings = AppSettings()

        assert settings.environment == "development"
        assert settings.storage_provider == "s3"
        assert settings.storage_bucket_name is None
        assert settings.storage_region == "us-east-1"
        assert settings.storage_access_key_id is None
        assert settings.storage_key_prefix == ""
        assert settings.storage_use_ssl is True
        assert settings.chunk_size == 5 * 1024 * 1024
        assert settings.chunk_threshold == 10 * 1024 * 1024
        assert settings.chunk_max_retries == 3
        assert settings.chunk_retry_delay_ms == 1000
        assert settings.chunk_max_retry_delay_ms is None
        assert settings.chunk_max_concurrency == 1
        assert settings.log_level == "INFO"
        assert settings.log_json_format is False
        assert not settings.has_storage_credentials

    def test_app_settings_from_env_vars(self) -> None:
        """Test that AppSettings correctly reads from environment variables."""
        env_vars = {
            "ENVIRONMENT": "production",
            "STORAGE_PROVIDER": "volcengine_tos",
            "STORAGE_ACCESS_KEY_ID": "test-access-key",
            "STORAGE_SECRET_ACCESS_KEY": "test-secret-key",
            "STORAGE_REGION": "cn-beijing",
            "STORAGE_BUCKET_NAME": "test-bucket",
            "STORAGE_ENDPOINT_URL": "https://tos-s3-cn-beijing.volces.com",
            "STORAGE_KEY_PREFIX": "tenant/",
            "STORAGE_USE_SSL": "false",
            "CHUNK_SIZE": "5242880",
            "CHUNK_THRESHOLD": "0",
            "CHUNK_MAX_RETRIES": "5",
            "CHUNK_RETRY_DELAY_MS": "250",
            "CHUNK_MAX_RETRY_DELAY_MS": "4000",
            "CHUNK_MAX_CONCURRENCY": "4",
            "LOG_LEVEL": "DEBUG",
            "LOG_JSON_FORMAT": "true",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            settings = AppSettings()

        assert settings.storage_provider == "volcengine_tos"
        assert settings.storage_region == "cn-beijing"
        assert settings.storage_key_prefix == "tenant/"
        assert settings.storage_use_ssl is False
        assert settings.chunk_size == 5242880
        assert settings.chunk_threshold == 0
        assert settings.chunk_max_retries == 5
        assert settings.chunk_max_retry_delay_ms == 4000
        assert settings.chunk_max_concurrency == 4
        assert settings.log_level == "DEBUG"
        assert settings.log_json_format is True
        assert settings.has_storage_credentials

    def test_get_storage_config(self) -> None:
        """Test that storage config carries the chunk upload settings."""
        env_vars = {
            "STORAGE_ACCESS_KEY_ID": "key",
            "STORAGE_SECRET_ACCESS_KEY": "secret",
            "STORAGE_BUCKET_NAME": "bucket",
            "CHUNK_SIZE": "1048576",
            "CHUNK_MAX_RETRY_DELAY_MS": "invalid",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            config = AppSettings().get_storage_config()

        assert config["provider"] == "s3"
        assert config["bucket_name"] == "bucket"
        assert config["access_key_id"] == "key"
        assert config["session_token"] is None
        assert config["chunk_upload"].chunk_size == 1048576
        assert config["chunk_upload"].max_retry_delay is None

    def test_invalid_chunk_settings(self) -> None:
        with patch.dict(os.environ, {"CHUNK_SIZE": "0"}, clear=True):
            settings = AppSettings()

        with pytest.raises(ValidationError):
            settings.get_chunk_upload_config()

    def test_whitespace_credentials(self) -> None:
        env_vars = {
            "STORAGE_ACCESS_KEY_ID": "   ",
            "STORAGE_SECRET_ACCESS_KEY": "secret",
            "STORAGE_BUCKET_NAME": "bucket",
        }

        with patch.dict(os.environ, env_vars, clear=True):
            assert not AppSettings().has_storage_credentials

    def test_boolean_env_var_parsing(self) -> None:
        """Test that boolean environment variables are parsed correctly."""
        for value in ["true", "True", "TRUE", "1", "yes", "on"]:
            with patch.dict(os.environ, {"STORAGE_USE_SSL": value}):
                assert get_env_bool("STORAGE_USE_SSL") is True, f"Failed for value: {value}"

        for value in ["false", "False", "0", "no", "off"]:
            with patch.dict(os.environ, {"STORAGE_USE_SSL": value}):
                assert get_env_bool("STORAGE_USE_SSL", True) is False, f"Failed for value: {value}"

    def test_int_env_var_fallback(self) -> None:
        with patch.dict(os.environ, {"CHUNK_SIZE": "lots"}):
            assert get_env_int("CHUNK_SIZE", 7) == 7


class TestGetSettings:
    """Test suite for get_settings function."""

    def test_get_settings_returns_singleton(self) -> None:
        """Test that get_settings returns the same instance (singleton pattern)."""
        assert get_settings() is get_settings()

    def test_get_settings_caching(self) -> None:
        """Test that get_settings caches the settings instance."""
        cloudfile.utils.env_config._settings = None

        with patch.dict(os.environ, {"STORAGE_BUCKET_NAME": "cached-bucket"}):
            settings1 = get_settings()

        with patch.dict(os.environ, {"STORAGE_BUCKET_NAME": "new-bucket"}):
            settings2 = get_settings()

        assert settings1 is settings2
        assert settings2.storage_bucket_name == "cached-bucket"
        cloudfile.utils.env_config._settings = None
