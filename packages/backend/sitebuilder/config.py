from __future__ import annotations

from dataclasses import dataclass, field
import os

from dotenv import find_dotenv, load_dotenv


def _load_env() -> None:
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


_load_env()


def _get_env(key: str, default: str | None = None) -> str | None:
    value = os.getenv(key)
    if value is None or value == "":
        return default
    return value


def _get_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _get_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Settings:
    database_url: str = field(default_factory=lambda: _get_env("DATABASE_URL", "sqlite:///./sitebuilder.db"))

    generation_provider: str = field(default_factory=lambda: _get_env("GENERATION_PROVIDER", "anthropic") or "anthropic")
    model: str = field(
        default_factory=lambda: _get_env("MODEL") or _get_env("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")
    )
    planner_model: str = field(
        default_factory=lambda: _get_env("PLANNER_MODEL")
        or _get_env("MODEL")
        or _get_env("ANTHROPIC_MODEL", "claude-3-5-sonnet-latest")
    )
    temperature: float = field(default_factory=lambda: _get_float("TEMPERATURE", 0.1))
    max_tokens: int = field(default_factory=lambda: _get_int("MAX_TOKENS", 8000))

    openai_api_key: str | None = field(default_factory=lambda: _get_env("OPENAI_API_KEY") or _get_env("DEFAULT_KEY"))
    openai_base_url: str = field(
        default_factory=lambda: _get_env("OPENAI_BASE_URL") or _get_env("DEFAULT_BASE_URL", "https://api.openai.com/v1")
    )
    anthropic_api_key: str | None = field(default_factory=lambda: _get_env("ANTHROPIC_API_KEY"))
    anthropic_base_url: str = field(default_factory=lambda: _get_env("ANTHROPIC_BASE_URL", "https://api.anthropic.com"))
    anthropic_api_version: str = field(default_factory=lambda: _get_env("ANTHROPIC_API_VERSION", "2023-06-01"))
    provider_timeout_seconds: float = field(default_factory=lambda: _get_float("PROVIDER_TIMEOUT_SECONDS", 120.0))

    generation_max_retries: int = field(default_factory=lambda: _get_int("GENERATION_MAX_RETRIES", 3))
    generation_retry_delay: float = field(default_factory=lambda: _get_float("GENERATION_RETRY_DELAY", 1.0))

    stream_keepalive_seconds: float = field(default_factory=lambda: _get_float("STREAM_KEEPALIVE_SECONDS", 10.0))
    stream_flush_chars: int = field(default_factory=lambda: _get_int("STREAM_FLUSH_CHARS", 50))
    stream_flush_interval: float = field(default_factory=lambda: _get_float("STREAM_FLUSH_INTERVAL", 0.2))

    placeholder_image_base: str = field(
        default_factory=lambda: _get_env("PLACEHOLDER_IMAGE_BASE", "https://picsum.photos") or "https://picsum.photos"
    )
    auto_save: bool = field(default_factory=lambda: _get_bool("AUTO_SAVE", True))

    log_level: str = field(default_factory=lambda: _get_env("LOG_LEVEL", "INFO") or "INFO")
    log_dir: str | None = field(default_factory=lambda: _get_env("LOG_DIR"))


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def refresh_settings() -> Settings:
    """Rebuild settings from environment variables."""
    global _settings
    _settings = Settings()
    return _settings


__all__ = ["Settings", "get_settings", "refresh_settings"]
