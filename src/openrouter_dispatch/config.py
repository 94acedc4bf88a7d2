from __future__ import annotations

import os

from pydantic import BaseModel, Field

from .catalog import ModelCatalog, ModelRole
from .errors import ConfigurationError

OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"


def _api_key_from_env() -> str | None:
    return os.getenv("OPENROUTER_API_KEY") or os.getenv("OPENAI_API_KEY") or None


class DispatcherConfig(BaseModel):
    # Upstream
    openrouter_api_key: str | None = Field(default_factory=_api_key_from_env)
    base_url: str = Field(default_factory=lambda: os.getenv("OPENROUTER_BASE_URL", OPENROUTER_API_BASE))
    app_referer: str = Field(default_factory=lambda: os.getenv("OPENROUTER_APP_REFERER", "https://smartjobfit.ai"))
    app_title: str = Field(default_factory=lambda: os.getenv("OPENROUTER_APP_TITLE", "SmartJobFit AI"))

    # Model catalog
    primary_model: str = Field(default_factory=lambda: os.getenv("OPENROUTER_PRIMARY_MODEL", "openai/gpt-4o"))
    fallback_model: str | None = Field(
        default_factory=lambda: os.getenv("OPENROUTER_FALLBACK_MODEL", "openai/gpt-4o-mini")
    )
    cheap_model: str | None = Field(
        default_factory=lambda: os.getenv("OPENROUTER_CHEAP_MODEL", "openai/gpt-3.5-turbo")
    )
    alternative_model: str | None = Field(
        default_factory=lambda: os.getenv("OPENROUTER_ALTERNATIVE_MODEL", "anthropic/claude-3-haiku")
    )

    # Generation defaults
    default_max_tokens: int = Field(default_factory=lambda: int(os.getenv("DEFAULT_MAX_TOKENS", "4000")))
    default_temperature: float = Field(default_factory=lambda: float(os.getenv("DEFAULT_TEMPERATURE", "0.7")))

    # Deadlines
    attempt_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("ATTEMPT_TIMEOUT_SECONDS", "60"))
    )
    request_timeout_seconds: float = Field(
        default_factory=lambda: float(os.getenv("REQUEST_TIMEOUT_SECONDS", "150"))
    )

    # Observability
    log_level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    log_format: str = Field(default_factory=lambda: os.getenv("LOG_FORMAT", "json"))
    enable_metrics: bool = Field(
        default_factory=lambda: os.getenv("ENABLE_METRICS", "false").lower() == "true"
    )
    metrics_bind: str = Field(default_factory=lambda: os.getenv("METRICS_BIND", "127.0.0.1"))
    metrics_port: int = Field(default_factory=lambda: int(os.getenv("METRICS_PORT", "9109")))

    # HTTP surface
    enable_api_docs: bool = Field(
        default_factory=lambda: os.getenv("ENABLE_API_DOCS", "false").lower() == "true"
    )
    max_prompt_chars: int = Field(default_factory=lambda: int(os.getenv("MAX_PROMPT_CHARS", "50000")))

    def require_api_key(self) -> str:
        if not self.openrouter_api_key:
            raise ConfigurationError("OPENROUTER_API_KEY (or OPENAI_API_KEY) is required.")
        return self.openrouter_api_key

    def build_catalog(self) -> ModelCatalog:
        return ModelCatalog(
            {
                ModelRole.PRIMARY: self.primary_model,
                ModelRole.FALLBACK: self.fallback_model,
                ModelRole.CHEAP: self.cheap_model,
                ModelRole.ALTERNATIVE: self.alternative_model,
            }
        )
