"""Shared configuration management for the ledger pipeline.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_LLM_PROVIDER=ollama
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="docledger",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # LLM collaborator configuration
    llm_provider: Literal["openai", "ollama"] = Field(
        default="openai",
        description="Collaborator used for classification, extraction and account fallback",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI chat model (vision-capable for image documents)",
    )
    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server base URL",
    )
    ollama_model: str = Field(
        default="qwen2.5vl:7b",
        description="Ollama model to use (a vision model is needed for image documents)",
    )
    llm_timeout_seconds: float = Field(
        default=120.0,
        gt=0,
        description="Per-request timeout for collaborator calls",
    )

    # Bookkeeping configuration
    base_currency: str = Field(
        default="SEK",
        pattern=r"^[A-Z]{3}$",
        description="Local currency used when no currency can be detected (ISO 4217)",
    )
    reference_data_dir: Path | None = Field(
        default=None,
        description="Directory with chart_of_accounts.yml, suppliers.yml and keywords.yml",
    )
    review_confidence_threshold: float = Field(
        default=0.7,
        ge=0,
        le=1,
        description="Confidence below which a mapping is flagged for human review",
    )
    max_line_item_workers: int = Field(
        default=4,
        ge=1,
        description="Thread pool size for resolving line-item accounts concurrently",
    )

    @field_validator("base_currency", mode="before")
    @classmethod
    def _upper_case_currency(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
