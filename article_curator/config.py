"""Configuration management for the article curator."""

import re
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError


class RetryConfig(BaseModel):
    """Bounded retry with exponential backoff."""
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(3, ge=0)
    base_delay_ms: float = Field(1000.0, gt=0)
    backoff_multiplier: float = Field(2.0, ge=1.0)


class FilterCriteria(BaseModel):
    """Caller-supplied selection rules for one collection run."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    keywords: list[str] = Field(default_factory=list)
    exclude_keywords: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("exclude_keywords", "excludeKeywords"),
    )
    min_relevance_score: float = Field(
        0.3, ge=0.0, le=1.0,
        validation_alias=AliasChoices("min_relevance_score", "minRelevanceScore"),
    )
    max_articles_per_day: int = Field(
        50, ge=1,
        validation_alias=AliasChoices("max_articles_per_day", "maxArticlesPerDay"),
    )


class SourceSettings(BaseModel):
    """Per-source configuration."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = True
    search_terms: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("search_terms", "searchTerms", "tags", "topics"),
    )
    max_articles: int | None = Field(
        None, ge=1, validation_alias=AliasChoices("max_articles", "maxArticles")
    )
    max_pages: int = Field(3, ge=1, validation_alias=AliasChoices("max_pages", "maxPages"))
    min_score: int | None = Field(
        None, ge=0, validation_alias=AliasChoices("min_score", "minScore")
    )
    request_interval_ms: int = Field(
        200, ge=0, validation_alias=AliasChoices("request_interval_ms", "requestIntervalMs")
    )


class SourcesConfig(BaseModel):
    """All known content sources."""
    model_config = ConfigDict(frozen=True)

    qiita: SourceSettings = Field(default_factory=lambda: SourceSettings(enabled=False))
    zenn: SourceSettings = Field(default_factory=lambda: SourceSettings(enabled=False))
    hackernews: SourceSettings = Field(default_factory=lambda: SourceSettings(enabled=False))
    devto: SourceSettings = Field(default_factory=lambda: SourceSettings(enabled=False))

    def enabled_sources(self) -> list[str]:
        return [name for name, source in self.items() if source.enabled]

    def items(self) -> list[tuple[str, SourceSettings]]:
        return [
            ("qiita", self.qiita),
            ("zenn", self.zenn),
            ("hackernews", self.hackernews),
            ("devto", self.devto),
        ]


class DiscordConfig(BaseModel):
    """Discord notification settings."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    webhook_url: str | None = None
    max_articles_per_batch: int = Field(
        10, ge=1, le=10,
        validation_alias=AliasChoices("max_articles_per_batch", "maxArticlesPerBatch"),
    )
    embed_color: str = Field(
        "#00ff7f", validation_alias=AliasChoices("embed_color", "embedColor")
    )

    @field_validator("embed_color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        """Validate #RRGGBB colour strings."""
        if not re.fullmatch(r"#?[0-9a-fA-F]{6}", v):
            raise ValueError(f"Invalid embed colour: {v}")
        return v if v.startswith("#") else f"#{v}"

    @property
    def embed_color_value(self) -> int:
        return int(self.embed_color.lstrip("#"), 16)


class PerformanceConfig(BaseModel):
    """Retry and timeout settings for source calls."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_retries: int = Field(3, ge=0, validation_alias=AliasChoices("max_retries", "maxRetries"))
    retry_delay_ms: float = Field(
        2000, gt=0, validation_alias=AliasChoices("retry_delay_ms", "retryDelayMs")
    )
    backoff_multiplier: float = Field(
        2.0, ge=1.0, validation_alias=AliasChoices("backoff_multiplier", "backoffMultiplier")
    )
    timeout_ms: float | None = Field(
        60000, gt=0, validation_alias=AliasChoices("timeout_ms", "timeoutMs")
    )


class CuratorConfig(BaseModel):
    """Fully validated configuration consumed by the pipeline."""
    model_config = ConfigDict(frozen=True)

    keywords: list[str]
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    filtering: FilterCriteria = Field(default_factory=FilterCriteria)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)

    @field_validator("keywords")
    @classmethod
    def validate_keywords(cls, v: list[str]) -> list[str]:
        """Keyword list must contain at least one non-blank entry."""
        cleaned = [keyword.strip() for keyword in v if keyword and keyword.strip()]
        if not cleaned:
            raise ValueError("Keywords array cannot be empty")
        return cleaned

    def filter_criteria(self) -> FilterCriteria:
        return self.filtering.model_copy(update={"keywords": list(self.keywords)})

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_retries=self.performance.max_retries,
            base_delay_ms=self.performance.retry_delay_ms,
            backoff_multiplier=self.performance.backoff_multiplier,
        )


class Settings(BaseSettings):
    """Environment-driven application settings."""

    # ── Secrets ────────────────────────────────────────────────────────────
    discord_webhook_url: str | None = Field(None, description="Discord webhook URL")
    qiita_access_token: str | None = Field(None, description="Qiita API access token")
    devto_api_key: str | None = Field(None, description="Dev.to API key")

    # ── Files ──────────────────────────────────────────────────────────────
    config_path: Path = Field(Path("config/keywords.yaml"), description="YAML configuration file")
    dedupe_state_path: Path | None = Field(
        None, description="Persist deduplication state across runs when set"
    )

    # ── Collection ─────────────────────────────────────────────────────────
    lookback_hours: float = Field(24.0, description="Collect items published within this window")
    user_agent: str = Field("AI-Article-Curator/0.1", description="User agent for web requests")

    # ── Logging ────────────────────────────────────────────────────────────
    log_level: str = Field("INFO", description="Log level")
    json_logging: bool = Field(False, description="Enable JSON logging")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("lookback_hours")
    @classmethod
    def validate_lookback(cls, v: float) -> float:
        """Lookback window must be positive."""
        if v <= 0:
            raise ValueError("lookback_hours must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level names."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings."""
    return Settings()


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        parts.append(f"{location}: {detail['msg']}")
    return "; ".join(parts)


def build_config(raw: dict[str, Any], settings: Settings | None = None) -> CuratorConfig:
    """Build a validated configuration from a raw mapping and environment settings.

    Args:
        raw: Parsed configuration document
        settings: Environment settings supplying secrets

    Returns:
        Immutable configuration

    Raises:
        ConfigurationError: If the document is invalid
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("Configuration document must be a mapping")

    settings = settings or get_settings()
    document = dict(raw)
    discord = dict(document.get("discord") or {})
    if settings.discord_webhook_url:
        discord["webhook_url"] = settings.discord_webhook_url
    document["discord"] = discord

    try:
        config = CuratorConfig.model_validate(document)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {_format_validation_error(e)}"
        ) from e

    if not config.sources.enabled_sources():
        raise ConfigurationError("At least one source must be enabled")

    return config


def load_config(path: str | Path | None = None, settings: Settings | None = None) -> CuratorConfig:
    """Load and validate the YAML configuration file."""
    settings = settings or get_settings()
    config_path = Path(path) if path else settings.config_path

    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        with open(config_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Config file parsing failed: {e}") from e

    return build_config(raw, settings)


def is_valid_webhook_url(url: str | None) -> bool:
    """Check that a URL looks like a Discord webhook."""
    if not url:
        return False
    parsed = urlparse(url)
    return (
        parsed.scheme == "https"
        and parsed.hostname in {"discord.com", "discordapp.com"}
        and parsed.path.startswith("/api/webhooks/")
    )


def validate_config(
    config: CuratorConfig,
    settings: Settings | None = None,
    require_webhook: bool = True,
) -> list[str]:
    """Return a list of problems that would prevent a full run."""
    settings = settings or get_settings()
    problems: list[str] = []

    if require_webhook and not is_valid_webhook_url(config.discord.webhook_url):
        problems.append("DISCORD_WEBHOOK_URL is missing or not a Discord webhook URL")

    if not config.sources.enabled_sources():
        problems.append("At least one source must be enabled")

    for name, source in config.sources.items():
        if source.enabled and not source.search_terms:
            problems.append(f"Source '{name}' is enabled but has no search terms")

    if settings.dedupe_state_path is not None and settings.dedupe_state_path.is_dir():
        problems.append(f"dedupe_state_path points to a directory: {settings.dedupe_state_path}")

    return problems


def generate_sample_config() -> dict[str, Any]:
    """Default configuration document."""
    return {
        "keywords": ["AI", "machine learning", "deep learning", "ChatGPT", "neural networks"],
        "sources": {
            "qiita": {"enabled": True, "tags": ["AI", "機械学習", "DeepLearning"]},
            "zenn": {"enabled": True, "topics": ["ai", "machinelearning", "deeplearning"]},
            "hackernews": {"enabled": True, "search_terms": ["AI", "machine learning", "ChatGPT"]},
            "devto": {"enabled": True, "tags": ["ai", "machinelearning", "deeplearning"]},
        },
        "discord": {"max_articles_per_batch": 10, "embed_color": "#00ff7f"},
        "filtering": {
            "min_relevance_score": 0.3,
            "max_articles_per_day": 50,
            "exclude_keywords": ["advertisement", "sponsored"],
        },
        "performance": {"max_retries": 3, "retry_delay_ms": 2000, "timeout_ms": 60000},
    }
