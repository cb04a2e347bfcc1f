from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


ProviderName = Literal["openai", "anthropic", "google", "local"]

PROVIDER_ALIASES: dict[str, ProviderName] = {
    "openai": "openai",
    "gpt": "openai",
    "anthropic": "anthropic",
    "claude": "anthropic",
    "google": "google",
    "gemini": "google",
    "local": "local",
    "ollama": "local",
}

DEFAULT_MODELS: dict[ProviderName, str] = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-20250514",
    "google": "gemini-2.5-flash",
    "local": "qwen3:4b",
}

DEFAULT_STATE_DIR = Path(".self-heal")


def _bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def normalize_provider(name: str) -> ProviderName:
    provider = PROVIDER_ALIASES.get(name.strip().lower())
    if provider is None:
        supported = ", ".join(sorted(PROVIDER_ALIASES))
        raise ConfigurationError(f"Unsupported AI provider {name!r}; expected one of: {supported}")
    return provider


@dataclass(slots=True)
class Settings:
    """Self-healing configuration, usually loaded from environment variables."""

    enabled: bool = False
    provider: ProviderName = "openai"
    model: str | None = None
    api_key: str | None = None
    local_host: str = "http://127.0.0.1:11434"
    cache_file: Path = DEFAULT_STATE_DIR / "healed_locators.json"
    report_file: Path = DEFAULT_STATE_DIR / "heal_events.jsonl"
    max_ai_tries: int = 4
    max_candidates: int = 80
    rank_limit: int = 40
    timeout_ms: int = 5000
    quick_timeout_ms: int | None = None
    max_retries: int = 2
    retry_base_delay_s: float = 1.0
    request_timeout_s: float = 60.0
    log_level: str = "INFO"
    test_name: str | None = None

    def __post_init__(self) -> None:
        self.provider = normalize_provider(self.provider)
        self.cache_file = Path(self.cache_file)
        self.report_file = Path(self.report_file)
        if self.max_ai_tries < 1:
            raise ConfigurationError("max_ai_tries must be at least 1")
        if self.max_candidates < 1 or self.rank_limit < 1:
            raise ConfigurationError("max_candidates and rank_limit must be positive")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries cannot be negative")
        self.log_level = self.log_level.strip().upper()
        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ConfigurationError(f"Unknown log level {self.log_level!r}")

    @classmethod
    def from_env(cls) -> "Settings":
        enabled = _bool_env("SELF_HEAL", False) or _bool_env("AI_SELF_HEAL", False)
        quick_raw = os.getenv("SELF_HEAL_QUICK_TIMEOUT_MS")
        return cls(
            enabled=enabled,
            provider=normalize_provider(os.getenv("AI_PROVIDER", "openai")),
            model=os.getenv("AI_MODEL") or None,
            api_key=os.getenv("AI_API_KEY") or None,
            local_host=os.getenv("OLLAMA_HOST", "http://127.0.0.1:11434"),
            cache_file=Path(os.getenv("SELF_HEAL_CACHE_FILE", str(DEFAULT_STATE_DIR / "healed_locators.json"))),
            report_file=Path(os.getenv("SELF_HEAL_REPORT_FILE", str(DEFAULT_STATE_DIR / "heal_events.jsonl"))),
            max_ai_tries=_int_env("SELF_HEAL_MAX_AI_TRIES", 4),
            max_candidates=_int_env("SELF_HEAL_MAX_CANDIDATES", 80),
            rank_limit=_int_env("SELF_HEAL_RANK_LIMIT", 40),
            timeout_ms=_int_env("SELF_HEAL_TIMEOUT_MS", 5000),
            quick_timeout_ms=_int_env("SELF_HEAL_QUICK_TIMEOUT_MS", 0) if quick_raw else None,
            max_retries=_int_env("AI_MAX_RETRIES", 2),
            retry_base_delay_s=_float_env("AI_RETRY_BASE_DELAY_S", 1.0),
            request_timeout_s=_float_env("AI_REQUEST_TIMEOUT_S", 60.0),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            test_name=os.getenv("SELF_HEAL_TEST_NAME") or None,
        )

    @property
    def resolved_model(self) -> str:
        return self.model or DEFAULT_MODELS[self.provider]

    @property
    def probe_timeout_ms(self) -> int:
        """Timeout for the first attempt on a declared locator."""

        if self.quick_timeout_ms is not None:
            return self.quick_timeout_ms
        return 1000 if self.enabled else self.timeout_ms

    @property
    def rank_cap(self) -> int:
        return min(self.max_candidates, self.rank_limit)
