"""Unit tests for application settings."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from src.settings import Settings, get_settings


class TestDefaults:
    def test_environment_defaults_to_development(self, monkeypatch):
        monkeypatch.delenv("ENVIRONMENT", raising=False)
        settings = Settings(_env_file=None)
        assert settings.environment == "development"
        assert settings.event_stream_enabled is True
        assert settings.scheduler_enabled is True

    def test_event_processing_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.event_type_limit_per_minute == 10
        assert settings.event_entity_limit_per_minute == 5
        assert settings.event_active_hours_start == 6
        assert settings.event_active_hours_end == 22
        assert settings.event_sample_rate == 0.1

    def test_ai_rate_limit_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.ai_requests_per_minute == 60
        assert settings.ai_tokens_per_minute == 150000
        assert settings.ai_burst_limit == 10
        assert settings.ai_confidence_threshold == 0.9


class TestEnvironmentOverrides:
    def test_reads_env_vars(self, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("API_PORT", "9000")
        settings = Settings(_env_file=None)
        assert settings.environment == "production"
        assert settings.api_port == 9000

    def test_encryption_secret_alias(self, monkeypatch):
        monkeypatch.setenv("TAPPHA_ENCRYPTION_KEY", "from-alias")
        settings = Settings(_env_file=None)
        assert settings.token_encryption_secret.get_secret_value() == "from-alias"

    def test_openai_api_key_alias(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        settings = Settings(_env_file=None)
        assert settings.llm_api_key.get_secret_value() == "sk-test"


class TestValidation:
    def test_sample_rate_bounds(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, event_sample_rate=1.5)

    def test_invalid_environment(self):
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, environment="moon")


def test_get_settings_is_cached():
    assert get_settings() is get_settings()
