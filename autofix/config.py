"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from autofix.utils.platform import get_config_dir


class ProviderType(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"
    OLLAMA = "ollama"


_PROVIDER_DEFAULTS: dict[ProviderType, dict[str, Any]] = {
    ProviderType.CLAUDE: {
        "api_base": "https://api.anthropic.com",
        "model": "claude-sonnet-4-20250514",
        "timeout_secs": 30,
        "max_retries": 3,
        "rate_limit_tpm": 30_000,
    },
    ProviderType.OPENAI: {
        "api_base": "https://api.openai.com/v1",
        "model": "gpt-4",
        "timeout_secs": 30,
        "max_retries": 3,
        "rate_limit_tpm": 90_000,
    },
    ProviderType.OLLAMA: {
        "api_base": "http://localhost:11434/v1",
        "model": "llama2",
        "timeout_secs": 120,  # local models are slow
        "max_retries": 3,
        "rate_limit_tpm": None,
    },
}


class ProviderConfig(BaseModel):
    provider_type: ProviderType = ProviderType.CLAUDE
    api_key: SecretStr = SecretStr("")
    api_base: str = "https://api.anthropic.com"
    model: str = "claude-sonnet-4-20250514"
    timeout_secs: int = 30
    max_retries: int = 3
    rate_limit_tpm: int | None = 30_000

    @field_validator("api_base", "model", mode="before")
    @classmethod
    def _strip(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @classmethod
    def for_provider(cls, provider_type: ProviderType | str, **overrides: Any) -> ProviderConfig:
        """Provider defaults with any non-None overrides applied on top."""
        ptype = ProviderType(provider_type)
        values = dict(_PROVIDER_DEFAULTS[ptype])
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(provider_type=ptype, **values)

    def api_key_value(self) -> str:
        return self.api_key.get_secret_value()

    @property
    def rate_limit_enabled(self) -> bool:
        return bool(self.rate_limit_tpm)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUTOFIX_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    provider: ProviderType = ProviderType.CLAUDE
    api_key: SecretStr | None = None
    anthropic_api_key: SecretStr | None = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    openai_api_key: SecretStr | None = Field(default=None, validation_alias="OPENAI_API_KEY")

    # Provider overrides; None falls back to the provider default
    api_base: str | None = None
    model: str | None = None
    timeout_secs: int | None = None
    max_retries: int | None = None
    rate_limit_tpm: int | None = None

    max_iterations: int = Field(default=20, ge=1)
    max_tokens: int = Field(default=1024, ge=1)
    temperature: float = 0.7
    test_timeout_secs: int = 1800
    log_level: str = "INFO"
    log_json: bool = False

    def provider_config(self) -> ProviderConfig:
        return ProviderConfig.for_provider(
            self.provider,
            api_key=SecretStr(self._resolve_api_key()),
            api_base=self.api_base,
            model=self.model,
            timeout_secs=self.timeout_secs,
            max_retries=self.max_retries,
            rate_limit_tpm=self.rate_limit_tpm,
        )

    def _resolve_api_key(self) -> str:
        if self.api_key is not None:
            return self.api_key.get_secret_value()
        if self.provider == ProviderType.CLAUDE and self.anthropic_api_key:
            return self.anthropic_api_key.get_secret_value()
        if self.provider == ProviderType.OPENAI and self.openai_api_key:
            return self.openai_api_key.get_secret_value()
        if self.provider == ProviderType.OLLAMA:
            return "ollama"
        return ""


def load_settings(config_path: str | Path | None = None, **overrides: Any) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config.

    YAML values and ``overrides`` are passed as init arguments, so they win
    over environment variables; ``overrides`` win over YAML.
    """
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("AUTOFIX_CONFIG")
    if config_path is None:
        default = get_config_dir() / "config.yaml"
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    yaml_data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**yaml_data)
