"""Configuration management.

Settings are loaded from init arguments, environment variables, ``.env`` and
``config.yaml`` (in that precedence). Each upstream provider is configured by
one ``(api_key, base_url, timeout, max_retries)`` tuple and is enabled if and
only if its API key is present.
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """Load config.yaml (if any) into a mapping."""
    candidates = []
    explicit = os.getenv("CHAT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """Application settings."""

    # ---- routing ----
    default_provider: str = Field(default="openai", description="Provider used when a turn names none")
    fusion_auto_route: bool = Field(
        default=False,
        description="Route turns without provider/model through fusion",
    )
    classification_provider: str = Field(default="openai")
    classification_model: str = Field(default="gpt-3.5-turbo")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_timeout: float = Field(default=30.0, gt=0, description="Per-call deadline (seconds)")
    openai_max_retries: int = Field(default=3, ge=0)
    # Anthropic
    anthropic_api_key: Optional[str] = Field(default=None, description="Anthropic API key")
    anthropic_base_url: str = Field(default="https://api.anthropic.com/v1")
    anthropic_timeout: float = Field(default=30.0, gt=0)
    anthropic_max_retries: int = Field(default=3, ge=0)
    # Google
    google_api_key: Optional[str] = Field(default=None, description="Google Generative Language API key")
    google_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    google_timeout: float = Field(default=30.0, gt=0)
    google_max_retries: int = Field(default=3, ge=0)

    # ---- chat pipeline ----
    estimated_chat_cost: float = Field(default=100, ge=0, description="Credits required by the pre-check")
    conversation_title_length: int = Field(default=60, ge=1)
    stream_chunk_size: int = Field(default=10, ge=1, description="Characters per re-chunked content event")
    stream_chunk_delay_ms: int = Field(default=0, ge=0)
    stream_queue_size: int = Field(default=64, ge=1)

    # ---- credits / rate limit ----
    initial_credits: float = Field(default=1000, ge=0, description="Credits granted to an empty balance")
    redis_url: str = Field(default="", description="Redis URL for the rate limiter")
    rate_limit_max_requests: int = Field(default=30, ge=1)
    rate_limit_window_seconds: int = Field(default=60, ge=1)
    rate_limit_skip: bool = Field(default=False)
    billing_max_attempts: int = Field(default=3, ge=1, description="Attempts per usage event before it is dropped")
    billing_backoff_seconds: float = Field(default=1.0, ge=0, description="Base of the exponential retry backoff")

    # ---- infrastructure ----
    storage_root: str = Field(default=".storage", description="Root directory of the JSON stores")
    log_dir: str = Field(default="logs", description="Log directory")
    log_level: str = Field(default="INFO")
    log_to_file: bool = Field(default=False)
    log_redact_content: bool = Field(default=False, description="Truncate log messages")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "anthropic_api_key", "google_api_key")
    @classmethod
    def blank_key_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("default_provider", "classification_provider")
    @classmethod
    def lower_provider(cls, v: str) -> str:
        return v.strip().lower()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
