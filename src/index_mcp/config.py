"""Runtime settings loaded from environment variables."""

import math
import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import time

from index_mcp.errors import ConfigurationError
from index_mcp.models import RiskPreference

VALID_MARKET_PROVIDERS = {"openai", "yfinance", "static"}
VALID_NARRATIVE_PROVIDERS = {"openai", "template"}


def _parse_clock(text: str) -> time:
    """Parse ``HH:MM`` into a time."""
    try:
        hour_text, minute_text = text.strip().split(":")
        return time(int(hour_text), int(minute_text))
    except ValueError as e:
        raise ValueError(f"Invalid REFRESH_AT '{text}'. Expected HH:MM") from e


def _optional(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name, "").strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    """Immutable runtime settings. Build with ``Settings.from_env()``."""

    index_symbol: str = "^NDX"
    index_name: str = "NASDAQ 100"
    market_provider: str = "openai"
    narrative_provider: str = "template"
    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_search_model: str = "gpt-4o-mini-search-preview"
    history_length: int = 90
    history_seed: int | None = None
    refresh_at: time = time(15, 0)
    refresh_timezone: str | None = None
    provider_timeout_seconds: float = 30.0
    default_risk: RiskPreference = RiskPreference.MODERATE
    preferred_source: str = "google"
    cache_dir: str = ".cache/history"
    cache_ttl: int = 86400
    provider_max_retries: int = 2
    provider_base_delay: float = 1.0
    provider_max_delay: float = 30.0
    provider_max_workers: int = 4

    def __post_init__(self) -> None:
        market = self.market_provider.lower().strip()
        narrative = self.narrative_provider.lower().strip()

        if market not in VALID_MARKET_PROVIDERS:
            raise ValueError(
                f"Invalid MARKET_PROVIDER '{self.market_provider}'. "
                f"Must be one of: {sorted(VALID_MARKET_PROVIDERS)}"
            )
        if narrative not in VALID_NARRATIVE_PROVIDERS:
            raise ValueError(
                f"Invalid NARRATIVE_PROVIDER '{self.narrative_provider}'. "
                f"Must be one of: {sorted(VALID_NARRATIVE_PROVIDERS)}"
            )
        if self.history_length < 1:
            raise ValueError(f"HISTORY_LENGTH must be >= 1, got {self.history_length}")
        if not math.isfinite(self.provider_timeout_seconds) or self.provider_timeout_seconds <= 0:
            raise ValueError("PROVIDER_TIMEOUT must be a positive finite number")

        object.__setattr__(self, "market_provider", market)
        object.__setattr__(self, "narrative_provider", narrative)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """
        Load settings from the environment.

        Args:
            env: Mapping to read instead of os.environ (tests)

        Raises:
            ValueError: If a value is present but malformed
        """
        if env is None:
            env = os.environ

        seed_text = _optional(env, "HISTORY_SEED")

        return cls(
            index_symbol=env.get("INDEX_SYMBOL", "^NDX").strip(),
            index_name=env.get("INDEX_NAME", "NASDAQ 100").strip(),
            market_provider=env.get("MARKET_PROVIDER", "openai"),
            narrative_provider=env.get("NARRATIVE_PROVIDER", "template"),
            openai_api_key=_optional(env, "OPENAI_API_KEY"),
            openai_base_url=_optional(env, "OPENAI_BASE_URL"),
            openai_model=env.get("OPENAI_MODEL", "gpt-4o-mini"),
            openai_search_model=env.get("OPENAI_SEARCH_MODEL", "gpt-4o-mini-search-preview"),
            history_length=int(env.get("HISTORY_LENGTH", "90")),
            history_seed=int(seed_text) if seed_text is not None else None,
            refresh_at=_parse_clock(env.get("REFRESH_AT", "15:00")),
            refresh_timezone=_optional(env, "REFRESH_TIMEZONE"),
            provider_timeout_seconds=float(env.get("PROVIDER_TIMEOUT", "30")),
            default_risk=RiskPreference.parse(env.get("DEFAULT_RISK", "moderate")),
            preferred_source=env.get("PREFERRED_SOURCE", "google").strip().lower(),
            cache_dir=env.get("CACHE_DIR", ".cache/history"),
            cache_ttl=int(env.get("CACHE_TTL", "86400")),
            provider_max_retries=int(env.get("PROVIDER_MAX_RETRIES", "2")),
            provider_base_delay=float(env.get("PROVIDER_BASE_DELAY", "1.0")),
            provider_max_delay=float(env.get("PROVIDER_MAX_DELAY", "30.0")),
            provider_max_workers=int(env.get("PROVIDER_MAX_WORKERS", "4")),
        )

    @property
    def needs_openai(self) -> bool:
        return self.market_provider == "openai" or self.narrative_provider == "openai"

    def require_credentials(self) -> None:
        """
        Fail fast when a configured provider has no credential.

        Raises:
            ConfigurationError: If OPENAI_API_KEY is required but missing
        """
        if self.needs_openai and not self.openai_api_key:
            raise ConfigurationError(
                "OPENAI_API_KEY is not set but an OpenAI-backed provider is configured",
                setting="OPENAI_API_KEY",
            )
