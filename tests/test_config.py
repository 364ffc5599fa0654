"""Tests for configuration module."""

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from article_curator.config import (
    DiscordConfig,
    FilterCriteria,
    RetryConfig,
    Settings,
    SourceSettings,
    build_config,
    generate_sample_config,
    is_valid_webhook_url,
    load_config,
    validate_config,
)
from article_curator.errors import ConfigurationError, FatalError
from conftest import WEBHOOK_URL


def test_sample_config_builds(settings):
    """Test that the default document is a valid configuration."""
    config = build_config(generate_sample_config(), settings)

    assert config.sources.enabled_sources() == ["qiita", "zenn", "hackernews", "devto"]
    assert config.sources.qiita.search_terms == ["AI", "機械学習", "DeepLearning"]
    assert config.sources.zenn.search_terms == ["ai", "machinelearning", "deeplearning"]
    assert config.performance.timeout_ms == 60000


def test_camel_case_keys_are_accepted(settings):
    raw = {
        "keywords": ["AI"],
        "sources": {"devto": {"enabled": True, "tags": ["ai"], "maxArticles": 5, "minScore": 3}},
        "filtering": {"minRelevanceScore": 0.5, "maxArticlesPerDay": 7, "excludeKeywords": ["ad"]},
        "performance": {"maxRetries": 1, "retryDelayMs": 500},
    }

    config = build_config(raw, settings)

    assert config.sources.devto.max_articles == 5
    assert config.sources.devto.min_score == 3
    assert config.filtering.min_relevance_score == 0.5
    assert config.filtering.max_articles_per_day == 7
    assert config.filtering.exclude_keywords == ["ad"]
    assert config.retry_config() == RetryConfig(max_retries=1, base_delay_ms=500, backoff_multiplier=2.0)


def test_unlisted_sources_default_to_disabled(settings):
    config = build_config({"keywords": ["AI"], "sources": {"zenn": {"topics": ["ai"]}}}, settings)

    assert config.sources.enabled_sources() == ["zenn"]
    assert not config.sources.qiita.enabled


@pytest.mark.parametrize("raw, message", [
    ({"keywords": [], "sources": {"qiita": {"tags": ["ai"]}}}, "Keywords array cannot be empty"),
    ({"keywords": ["  "], "sources": {"qiita": {"tags": ["ai"]}}}, "Keywords array cannot be empty"),
    ({"sources": {"qiita": {"tags": ["ai"]}}}, "keywords"),
    (
        {"keywords": ["AI"], "sources": {"qiita": {}}, "filtering": {"min_relevance_score": 1.5}},
        "min_relevance_score",
    ),
    ({"keywords": ["AI"], "sources": {"qiita": {"enabled": False}}}, "At least one source must be enabled"),
    (
        {"keywords": ["AI"], "sources": {"qiita": {}}, "discord": {"embed_color": "green"}},
        "Invalid embed colour",
    ),
])
def test_invalid_documents_raise(settings, raw, message):
    with pytest.raises(ConfigurationError, match=message):
        build_config(raw, settings)


def test_configuration_error_is_fatal(settings):
    with pytest.raises(FatalError):
        build_config(["not", "a", "mapping"], settings)


def test_webhook_comes_from_settings(settings):
    raw = {"keywords": ["AI"], "sources": {"qiita": {}}, "discord": {"webhook_url": "https://other"}}

    config = build_config(raw, settings)

    assert config.discord.webhook_url == WEBHOOK_URL


def test_filter_criteria_carries_keywords(settings):
    config = build_config({"keywords": [" AI ", "LLM"], "sources": {"qiita": {}}}, settings)

    criteria = config.filter_criteria()

    assert criteria.keywords == ["AI", "LLM"]
    assert criteria.min_relevance_score == 0.3
    assert criteria.max_articles_per_day == 50


def test_filter_criteria_bounds():
    with pytest.raises(ValidationError):
        FilterCriteria(min_relevance_score=-0.1)
    with pytest.raises(ValidationError):
        FilterCriteria(max_articles_per_day=0)


def test_source_settings_defaults():
    source = SourceSettings()

    assert source.enabled
    assert source.min_score is None
    assert source.max_pages == 3


def test_embed_color_normalization():
    assert DiscordConfig(embed_color="FF0000").embed_color == "#FF0000"
    assert DiscordConfig(embed_color="#00ff7f").embed_color_value == 0x00FF7F


def test_load_config_from_file(temp_dir, settings, sample_raw_config):
    path = temp_dir / "keywords.yaml"
    path.write_text(yaml.safe_dump(sample_raw_config, allow_unicode=True), encoding="utf-8")

    config = load_config(path, settings)

    assert config.keywords == ["AI", "machine learning"]
    assert config.sources.enabled_sources() == ["qiita", "hackernews"]
    assert config.filtering.exclude_keywords == ["sponsored"]


def test_load_config_uses_settings_path(temp_dir, sample_raw_config):
    path = temp_dir / "custom.yaml"
    path.write_text(yaml.safe_dump(sample_raw_config), encoding="utf-8")
    settings = Settings(_env_file=None, config_path=path)

    assert load_config(settings=settings).keywords == ["AI", "machine learning"]


def test_load_config_missing_file(temp_dir, settings):
    with pytest.raises(ConfigurationError, match="Config file not found"):
        load_config(temp_dir / "missing.yaml", settings)


def test_load_config_invalid_yaml(temp_dir, settings):
    path = temp_dir / "broken.yaml"
    path.write_text("keywords: [AI\nsources: {", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="parsing failed"):
        load_config(path, settings)


def test_bundled_config_is_valid(settings):
    config = load_config(Path(__file__).parent.parent / "config" / "keywords.yaml", settings)

    assert config.sources.hackernews.min_score == 10
    assert config.sources.devto.min_score == 5


def test_validate_config(settings, sample_raw_config):
    config = build_config(sample_raw_config, settings)

    assert validate_config(config, settings) == []


def test_validate_config_without_webhook(sample_raw_config):
    settings = Settings(_env_file=None)
    config = build_config(sample_raw_config, settings)

    problems = validate_config(config, settings)

    assert len(problems) == 1
    assert "DISCORD_WEBHOOK_URL" in problems[0]
    assert validate_config(config, settings, require_webhook=False) == []


def test_validate_config_reports_empty_terms(settings):
    config = build_config({"keywords": ["AI"], "sources": {"qiita": {"tags": []}}}, settings)

    problems = validate_config(config, settings)

    assert problems == ["Source 'qiita' is enabled but has no search terms"]


def test_validate_config_state_path_directory(settings, sample_raw_config, temp_dir):
    settings = settings.model_copy(update={"dedupe_state_path": temp_dir})
    config = build_config(sample_raw_config, settings)

    assert any("directory" in problem for problem in validate_config(config, settings))


@pytest.mark.parametrize("url, valid", [
    (WEBHOOK_URL, True),
    ("https://discordapp.com/api/webhooks/1/abc", True),
    ("http://discord.com/api/webhooks/1/abc", False),
    ("https://example.com/api/webhooks/1/abc", False),
    ("", False),
    (None, False),
])
def test_webhook_url_validation(url, valid):
    assert is_valid_webhook_url(url) is valid


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOOKBACK_HOURS", "48")
    monkeypatch.setenv("QIITA_ACCESS_TOKEN", "qiita-token")

    settings = Settings(_env_file=None)

    assert settings.log_level == "DEBUG"
    assert settings.lookback_hours == 48
    assert settings.qiita_access_token == "qiita-token"


def test_settings_validation():
    with pytest.raises(ValidationError, match="Unknown log level"):
        Settings(_env_file=None, log_level="LOUD")
    with pytest.raises(ValidationError, match="lookback_hours must be positive"):
        Settings(_env_file=None, lookback_hours=0)
