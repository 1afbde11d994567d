"""Application configuration."""

import os
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from takeoff.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Find .env file in multiple possible locations."""
    current_dir = os.path.dirname(os.path.abspath(__file__))

    possible_paths = [
        os.path.join(current_dir, ".env"),
        os.path.join(os.path.dirname(current_dir), ".env"),
        os.path.join(os.path.dirname(os.path.dirname(current_dir)), ".env"),
    ]

    for path_str in possible_paths:
        if os.path.exists(path_str):
            path = Path(path_str)
            LOGGER.info(f"Found .env file at: {path}")
            return path

    LOGGER.debug("No .env file found in expected locations")
    return None


ENV_FILE = find_env_file()


class LLMSettings(BaseSettings):
    """Vision-language provider settings."""

    provider: str = Field(default="openrouter", validation_alias="LLM_PROVIDER")

    openrouter_api_key: str = Field(default="", validation_alias="OPENROUTER_API_KEY")
    openrouter_api_url: str = Field(
        default="https://openrouter.ai/api/v1/chat/completions",
        validation_alias="OPENROUTER_API_URL",
    )
    openrouter_model: str = Field(default="openai/gpt-4o-mini", validation_alias="OPENROUTER_MODEL")

    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")

    timeout_seconds: int = Field(default=90, validation_alias="LLM_TIMEOUT_SECONDS")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )


class PipelineSettings(BaseSettings):
    """Batching, retry and sampling limits for the extraction pipeline."""

    # Batch Processing
    scan_batch_size: int = Field(default=10, ge=1, validation_alias="SCAN_BATCH_SIZE")
    extraction_batch_size: int = Field(default=4, ge=1, validation_alias="EXTRACTION_BATCH_SIZE")
    context_batch_size: int = Field(default=5, ge=1, validation_alias="CONTEXT_BATCH_SIZE")
    cooldown_ms: int = Field(default=1500, ge=0, validation_alias="BATCH_COOLDOWN_MS")

    # Retry
    max_retries: int = Field(default=3, ge=0, validation_alias="MAX_RETRIES")
    retry_base_delay_ms: int = Field(default=2000, ge=0, validation_alias="RETRY_BASE_DELAY_MS")
    rate_limit_backoff_multiplier: float = Field(
        default=2.0, ge=1.0, validation_alias="RATE_LIMIT_BACKOFF_MULTIPLIER"
    )

    # Sampling
    context_sample_pages: int = Field(default=5, ge=1, validation_alias="CONTEXT_SAMPLE_PAGES")
    max_scan_pages: int = Field(default=30, ge=1, validation_alias="MAX_SCAN_PAGES")
    max_extraction_pages: int = Field(default=10, ge=1, validation_alias="MAX_EXTRACTION_PAGES")

    render_dpi: int = Field(default=150, ge=36, validation_alias="RENDER_DPI")

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )


class Settings(BaseSettings):
    """Unified application settings with nested models."""

    llm: LLMSettings = Field(default_factory=lambda: LLMSettings())
    pipeline: PipelineSettings = Field(default_factory=lambda: PipelineSettings())

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )
