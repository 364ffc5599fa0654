"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from collections.abc import Generator
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pytest

from article_curator.config import Settings, get_settings
from article_curator.ingest.sources import SourceAdapter
from article_curator.models import Item, SourceTag

ENV_VARS = (
    "DISCORD_WEBHOOK_URL",
    "QIITA_ACCESS_TOKEN",
    "DEVTO_API_KEY",
    "CONFIG_PATH",
    "DEDUPE_STATE_PATH",
    "LOOKBACK_HOURS",
    "USER_AGENT",
    "LOG_LEVEL",
    "JSON_LOGGING",
)

WEBHOOK_URL = "https://discord.com/api/webhooks/123456/test-token"


class StatusError(Exception):
    """HTTP failure carrying a status code, like aiohttp.ClientResponseError."""

    def __init__(self, status: int, message: str = ""):
        super().__init__(message or f"HTTP {status}")
        self.status = status


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeAdapter(SourceAdapter):
    """Adapter returning canned items, optionally failing first."""

    source_tag = SourceTag.QIITA

    def __init__(
        self,
        name: str,
        items: list[Item] | None = None,
        failures: list[BaseException] | None = None,
        enabled: bool = True,
        fail_always: BaseException | None = None,
        delay: float = 0.0,
    ):
        super().__init__(enabled=enabled, search_terms=["ai"])
        self.name = name
        self.items = items or []
        self.failures = list(failures or [])
        self.fail_always = fail_always
        self.delay = delay
        self.calls = 0
        self.received: list[tuple[list[str] | None, datetime | None]] = []

    async def collect(self, search_params=None, since=None):
        self.calls += 1
        self.received.append((search_params, since))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_always is not None:
            raise self.fail_always
        if self.failures:
            raise self.failures.pop(0)
        return list(self.items)

    async def fetch_term(self, term, since):
        return []

    def transform(self, record, term=None):
        raise NotImplementedError


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch):
    """Keep the host environment and cached settings out of tests."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, discord_webhook_url=WEBHOOK_URL)


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_item():
    """Factory for Items with unique ids and URLs."""
    counter = {"n": 0}

    def factory(**overrides: Any) -> Item:
        counter["n"] += 1
        n = counter["n"]
        fields: dict[str, Any] = {
            "id": f"qiita-{n}",
            "title": f"Article number {n}",
            "url": f"https://example.com/articles/{n}",
            "author": "tester",
            "published_at": datetime.now(timezone.utc),
            "source": SourceTag.QIITA,
        }
        fields.update(overrides)
        return Item(**fields)

    return factory


@pytest.fixture
def sample_raw_config() -> dict[str, Any]:
    return {
        "keywords": ["AI", "machine learning"],
        "sources": {
            "qiita": {"enabled": True, "tags": ["AI"]},
            "zenn": {"enabled": False, "topics": ["ai"]},
            "hackernews": {"enabled": True, "search_terms": ["LLM"]},
            "devto": {"enabled": False},
        },
        "filtering": {
            "min_relevance_score": 0.2,
            "max_articles_per_day": 10,
            "exclude_keywords": ["sponsored"],
        },
    }
