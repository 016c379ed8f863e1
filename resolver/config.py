from __future__ import annotations

import os
from dataclasses import dataclass

from pydantic_settings import BaseSettings, SettingsConfigDict

_TRUE_VALUES = {"true", "1", "yes", "on"}

DEFAULT_GENERATION_MODELS = {
    "xai": "grok-3-mini",
    "openai": "gpt-4o-mini",
    "gemini": "gemini-1.5-flash",
}
DEFAULT_GENERATION_BASE_URLS = {
    "xai": "https://api.x.ai/v1",
    "openai": None,
    "gemini": None,
}
_CREDENTIAL_VARS = {
    "xai": ("XAI_API_KEY",),
    "openai": ("OPENAI_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GENERATIVEAI_API_KEY"),
}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class GenerationConfig:
    """Typed configuration for the text-generation backend."""

    provider: str
    api_key: str | None
    model: str
    base_url: str | None
    timeout_seconds: float
    temperature: float = 0.3
    max_tokens: int = 2000

    @classmethod
    def from_env(cls) -> GenerationConfig:
        """Create a GenerationConfig from environment variables."""
        provider = (os.getenv("GENERATION_PROVIDER") or "xai").strip().lower()
        api_key = None
        for var in _CREDENTIAL_VARS.get(provider, ()):
            value = (os.getenv(var) or "").strip()
            if value:
                api_key = value
                break
        return cls(
            provider=provider,
            api_key=api_key,
            model=os.getenv("GENERATION_MODEL")
            or DEFAULT_GENERATION_MODELS.get(provider, ""),
            base_url=os.getenv("GENERATION_BASE_URL")
            or DEFAULT_GENERATION_BASE_URLS.get(provider),
            timeout_seconds=_env_float("GENERATION_TIMEOUT_SECONDS", 15.0),
            max_tokens=_env_int("GENERATION_MAX_TOKENS", 2000),
        )

    @property
    def is_available(self) -> bool:
        """A credential is configured for a known provider."""
        return bool(self.api_key) and self.provider in _CREDENTIAL_VARS


@dataclass(frozen=True)
class BrowserConfig:
    """Configuration values for the headless browser strategy."""

    enabled: bool
    headless: bool
    navigation_timeout_ms: int
    settle_ms: int
    marker_timeout_ms: int

    @classmethod
    def from_env(cls) -> BrowserConfig:
        return cls(
            enabled=_env_flag("BROWSER_ENABLED", "true"),
            headless=_env_flag("BROWSER_HEADLESS", "true"),
            navigation_timeout_ms=_env_int("BROWSER_NAVIGATION_TIMEOUT_MS", 12000),
            settle_ms=_env_int("BROWSER_SETTLE_MS", 1500),
            marker_timeout_ms=_env_int("BROWSER_MARKER_TIMEOUT_MS", 5000),
        )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    ENV: str = "development"
    DEFAULT_SOURCE: str = "britannica"
    ALLOWED_ORIGINS: str = ""
    RESOLVE_BUDGET_SECONDS: float = 45.0
    RESOLVE_CACHE_TIMEOUT: int = 600
    RESOLVE_RATE_LIMIT: str = "30 per minute"


settings = AppSettings()
