"""Unit tests for configuration management."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from docledger.shared.config import Settings, get_settings


def test_settings_defaults(clean_env: None) -> None:
    """Test that settings have correct default values."""
    settings = Settings()

    assert settings.environment == "development"
    assert settings.log_level == "INFO"
    assert settings.service_name == "docledger"
    assert settings.service_version == "0.1.0"
    assert settings.llm_provider == "openai"
    assert settings.base_currency == "SEK"
    assert settings.reference_data_dir is None
    assert settings.review_confidence_threshold == 0.7
    assert settings.max_line_item_workers == 4


def test_settings_from_env_vars(clean_env: None) -> None:
    """Test that settings can be overridden via environment variables."""
    os.environ["APP_ENVIRONMENT"] = "production"
    os.environ["APP_LOG_LEVEL"] = "ERROR"
    os.environ["APP_LLM_PROVIDER"] = "ollama"
    os.environ["APP_BASE_CURRENCY"] = "EUR"
    os.environ["APP_REFERENCE_DATA_DIR"] = "/srv/tables"

    settings = Settings()

    assert settings.environment == "production"
    assert settings.log_level == "ERROR"
    assert settings.llm_provider == "ollama"
    assert settings.base_currency == "EUR"
    assert settings.reference_data_dir == Path("/srv/tables")


def test_settings_case_insensitive(clean_env: None) -> None:
    """Test that environment variables are case insensitive."""
    os.environ["app_log_level"] = "DEBUG"

    settings = Settings()

    assert settings.log_level == "DEBUG"


def test_settings_reject_unknown_provider(clean_env: None) -> None:
    """Test that only registered collaborator providers are accepted."""
    os.environ["APP_LLM_PROVIDER"] = "claude-desktop"

    with pytest.raises(ValidationError):
        Settings()


def test_settings_reject_threshold_out_of_range(clean_env: None) -> None:
    """Review threshold must be a probability."""
    with pytest.raises(ValidationError):
        Settings(review_confidence_threshold=1.5)


def test_base_currency_upper_cased(clean_env: None) -> None:
    """Lower-case currency codes are accepted and stored upper-case."""
    os.environ["APP_BASE_CURRENCY"] = " nok "

    assert Settings().base_currency == "NOK"


@pytest.mark.parametrize("currency", ["kronor", "S3K", ""])
def test_settings_reject_invalid_base_currency(clean_env: None, currency: str) -> None:
    """Base currency must be a three-letter code."""
    with pytest.raises(ValidationError):
        Settings(base_currency=currency)


def test_get_settings_factory(clean_env: None) -> None:
    """Test that factory function returns Settings instance."""
    settings = get_settings()

    assert isinstance(settings, Settings)
    assert settings.service_name == "docledger"
