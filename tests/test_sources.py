"""Tests for source adapters."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import aiohttp
import pytest

from article_curator.config import Settings, build_config
from article_curator.errors import AdapterError, ItemTransformError
from article_curator.ingest import (
    DevToAdapter,
    HackerNewsAdapter,
    QiitaAdapter,
    ZennAdapter,
    build_adapters,
)
from article_curator.ingest.hackernews import extract_tags
from article_curator.ingest.sources import make_excerpt
from article_curator.models import SourceTag

ZENN_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Zenn topic: ai</title>
    <link>https://zenn.dev/topics/ai</link>
    <description>Latest articles</description>
    <item>
      <title>LLMで始める自然言語処理</title>
      <link>https://zenn.dev/alice/articles/abc123</link>
      <description><![CDATA[<p>Hello <b>world</b></p>]]></description>
      <pubDate>Mon, 15 Jan 2024 10:00:00 GMT</pubDate>
      <dc:creator>alice</dc:creator>
    </item>
    <item>
      <title>Missing date</title>
      <link>https://zenn.dev/bob/articles/def456</link>
    </item>
  </channel>
</rss>
"""

EMPTY_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>Empty</title><link>https://zenn.dev</link></channel></rss>
"""


def qiita_record(record_id="abc", **overrides):
    record = {
        "id": record_id,
        "title": " LLM入門 ",
        "url": f"https://qiita.com/u/items/{record_id}",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "user": {"id": "u", "name": ""},
        "tags": [{"name": "AI"}, {"name": "LLM"}],
        "body": "# Heading\n**bold** text",
        "likes_count": 10,
        "stocks_count": 5,
    }
    record.update(overrides)
    return record


def hn_hit(object_id="42", **overrides):
    hit = {
        "objectID": object_id,
        "title": "Show HN: My LLM tool",
        "url": "https://www.example.com/tool",
        "author": "pg",
        "points": 120,
        "created_at": "2024-01-15T10:00:00.000Z",
    }
    hit.update(overrides)
    return hit


def devto_record(record_id=101, **overrides):
    record = {
        "id": record_id,
        "title": "Building RAG apps",
        "url": f"https://dev.to/u/rag-{record_id}",
        "published_at": datetime.now(timezone.utc).isoformat(),
        "user": {"name": "", "username": "devuser"},
        "tag_list": "ai, rag",
        "description": "A <b>guide</b> &amp; more",
        "positive_reactions_count": 12,
    }
    record.update(overrides)
    return record


class TestQiita:

    def test_transform(self):
        item = QiitaAdapter().transform(qiita_record())

        assert item.id == "qiita-abc"
        assert item.title == "LLM入門"
        assert item.author == "u"
        assert item.tags == ["AI", "LLM"]
        assert item.excerpt == "Heading bold text"
        assert item.popularity == 15
        assert item.source is SourceTag.QIITA
        assert item.relevance_score == 0.0

    def test_transform_rejects_missing_fields(self):
        record = qiita_record()
        del record["url"]

        with pytest.raises(ItemTransformError) as exc_info:
            QiitaAdapter().transform(record)

        assert exc_info.value.record_id == "abc"
        assert exc_info.value.source == "qiita"

    def test_transform_rejects_bad_date(self):
        with pytest.raises(ItemTransformError):
            QiitaAdapter().transform(qiita_record(created_at="someday"))

    def test_partial_batch_keeps_good_records(self):
        bad = qiita_record("bad")
        del bad["title"]

        items = QiitaAdapter()._transform_records([qiita_record("good"), bad], "AI")

        assert [item.id for item in items] == ["qiita-good"]

    def test_batch_with_no_good_records_fails(self):
        with pytest.raises(AdapterError, match="None of 2 records"):
            QiitaAdapter()._transform_records([{"id": 1}, {"id": 2}], "AI")

    def test_access_token_header(self):
        assert QiitaAdapter(access_token="tok").request_headers()["Authorization"] == "Bearer tok"
        assert "Authorization" not in QiitaAdapter().request_headers()

    @pytest.mark.asyncio
    async def test_collect_dedupes_filters_and_sleeps(self, sleeper):
        old = qiita_record("old", created_at="2020-01-01T00:00:00Z")
        pages = {
            "tag:AI": [qiita_record("one"), qiita_record("two")],
            "tag:LLM": [qiita_record("two"), old],
        }
        adapter = QiitaAdapter(search_terms=["AI", "LLM"], max_pages=1, sleep=sleeper)
        adapter._fetch_json = AsyncMock(side_effect=lambda url, params: pages[params["query"]])

        items = await adapter.collect(since=datetime.now(timezone.utc) - timedelta(days=1))

        assert [item.id for item in items] == ["qiita-one", "qiita-two"]
        assert adapter._fetch_json.await_count == 2
        assert sleeper.delays == [0.2]
        assert adapter.session is None

    @pytest.mark.asyncio
    async def test_collect_caps_items(self, sleeper):
        adapter = QiitaAdapter(search_terms=["AI"], max_articles=1, sleep=sleeper)
        adapter._fetch_json = AsyncMock(return_value=[qiita_record("one"), qiita_record("two")])

        items = await adapter.collect()

        assert len(items) == 1

    @pytest.mark.asyncio
    async def test_search_params_override_configured_terms(self, sleeper):
        adapter = QiitaAdapter(search_terms=["AI"], sleep=sleeper)
        adapter._fetch_json = AsyncMock(return_value=[])

        await adapter.collect(["Python"])

        params = adapter._fetch_json.await_args.args[1]
        assert params == {"query": "tag:Python", "per_page": 100, "page": 1, "sort": "created"}

    @pytest.mark.asyncio
    async def test_first_page_failure_propagates(self, sleeper):
        adapter = QiitaAdapter(search_terms=["AI"], sleep=sleeper)
        adapter._fetch_json = AsyncMock(side_effect=aiohttp.ClientConnectionError("boom"))

        with pytest.raises(aiohttp.ClientConnectionError):
            await adapter.collect()


class TestZenn:

    def test_parse_feed(self):
        items = ZennAdapter().parse_feed(ZENN_FEED, "ai")

        assert len(items) == 1
        item = items[0]
        assert item.id == "zenn-abc123"
        assert item.title == "LLMで始める自然言語処理"
        assert item.url == "https://zenn.dev/alice/articles/abc123"
        assert item.author == "alice"
        assert item.tags == ["ai"]
        assert item.excerpt == "Hello world"
        assert item.published_at == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)
        assert item.popularity is None

    def test_empty_feed(self):
        assert ZennAdapter().parse_feed(EMPTY_FEED, "ai") == []

    def test_unparseable_feed(self):
        with pytest.raises(AdapterError, match="Failed to parse Zenn RSS"):
            ZennAdapter().parse_feed("this is not a feed", "ai")

    def test_feed_url(self):
        assert ZennAdapter().feed_url("llm") == "https://zenn.dev/topics/llm/feed"

    @pytest.mark.asyncio
    async def test_fetch_term_applies_window(self):
        adapter = ZennAdapter()
        adapter._fetch_text = AsyncMock(return_value=ZENN_FEED)

        recent = await adapter.fetch_term("ai", datetime(2024, 1, 1, tzinfo=timezone.utc))
        none = await adapter.fetch_term("ai", datetime(2024, 2, 1, tzinfo=timezone.utc))

        assert len(recent) == 1
        assert none == []


class TestHackerNews:

    def test_transform(self):
        item = HackerNewsAdapter().transform(hn_hit())

        assert item.id == "hackernews-42"
        assert item.title == "My LLM tool"
        assert item.excerpt == "My LLM tool (example.com)"
        assert item.tags == ["llm", "Show HN"]
        assert item.popularity == 120
        assert item.published_at == datetime(2024, 1, 15, 10, tzinfo=timezone.utc)

    def test_text_post_links_to_item_page(self):
        item = HackerNewsAdapter().transform(hn_hit(url=None, title="Rust &amp; friends"))

        assert item.url == "https://news.ycombinator.com/item?id=42"
        assert item.title == "Rust & friends"
        assert item.excerpt == "Rust & friends"

    def test_missing_date_defaults_to_now(self):
        before = datetime.now(timezone.utc)
        item = HackerNewsAdapter().transform(hn_hit(created_at=None))

        assert item.published_at >= before

    @pytest.mark.parametrize("overrides", [{"title": "[deleted]"}, {"title": ""}, {"objectID": None}])
    def test_rejects_unusable_hits(self, overrides):
        with pytest.raises(ItemTransformError):
            HackerNewsAdapter().transform(hn_hit(**overrides))

    def test_extract_tags(self):
        assert extract_tags("Ask HN: Docker or not?", "Docker or not?", "") == ["docker", "Ask HN"]

    def test_search_params(self):
        since = datetime(2024, 1, 1, tzinfo=timezone.utc)
        params = HackerNewsAdapter().search_params("LLM", 0, since)

        assert params["tags"] == "story"
        assert params["page"] == 0
        assert params["numericFilters"] == f"points>5,created_at_i>{int(since.timestamp())}"
        assert HackerNewsAdapter().search_params("LLM", 1, None)["numericFilters"] == "points>5"

    @pytest.mark.asyncio
    async def test_fetch_term_applies_min_score(self):
        adapter = HackerNewsAdapter(max_pages=1)
        adapter._fetch_json = AsyncMock(return_value={"hits": [hn_hit("1"), hn_hit("2", points=7)]})

        items = await adapter.fetch_term("LLM", None)

        assert adapter.min_score == 10
        assert [item.id for item in items] == ["hackernews-1"]
        assert adapter._fetch_json.await_args.args[1]["page"] == 0


class TestDevTo:

    def test_transform(self):
        item = DevToAdapter().transform(devto_record())

        assert item.id == "devto-101"
        assert item.author == "devuser"
        assert item.tags == ["ai", "rag"]
        assert item.excerpt == "A guide & more"
        assert item.popularity == 12

    def test_tag_list_may_be_a_list(self):
        item = DevToAdapter().transform(devto_record(tag_list=["python", "ai"]))

        assert item.tags == ["python", "ai"]

    @pytest.mark.parametrize("overrides", [{"title": "[Deleted] post"}, {"url": None}, {"published_at": ""}])
    def test_rejects_unusable_articles(self, overrides):
        with pytest.raises(ItemTransformError):
            DevToAdapter().transform(devto_record(**overrides))

    def test_page_params(self):
        adapter = DevToAdapter()

        assert adapter.page_params("ai", 1) == {"tag": "ai", "per_page": 30, "page": 1, "top": 7}
        assert adapter.page_params("ai", 2) == {"tag": "ai", "per_page": 30, "page": 2, "state": "fresh"}

    @pytest.mark.asyncio
    async def test_later_page_failure_keeps_earlier_pages(self, sleeper):
        adapter = DevToAdapter(max_pages=3, sleep=sleeper)
        first_page = [devto_record(n) for n in range(30)]
        adapter._fetch_json = AsyncMock(side_effect=[first_page, aiohttp.ClientConnectionError("reset")])

        items = await adapter.fetch_term("ai", None)

        assert len(items) == 30
        assert adapter._fetch_json.await_count == 2
        assert sleeper.delays == [0.2]

    @pytest.mark.asyncio
    async def test_fetch_term_applies_min_score(self):
        adapter = DevToAdapter(max_pages=1)
        adapter._fetch_json = AsyncMock(return_value=[
            devto_record(1),
            devto_record(2, positive_reactions_count=2),
        ])

        items = await adapter.fetch_term("ai", None)

        assert [item.id for item in items] == ["devto-1"]


def test_build_adapters(sample_raw_config):
    settings = Settings(_env_file=None, qiita_access_token="tok", devto_api_key="key")
    config = build_config(sample_raw_config, settings)

    adapters = build_adapters(config, settings)

    assert [a.name for a in adapters] == ["qiita", "zenn", "hackernews", "devto"]
    assert [a.enabled for a in adapters] == [True, False, True, False]
    qiita, _, hackernews, devto = adapters
    assert qiita.search_terms == ["AI"]
    assert qiita.access_token == "tok"
    assert hackernews.min_score == 10
    assert hackernews.timeout_ms == 15000
    assert devto.request_headers()["api-key"] == "key"


def test_make_excerpt():
    assert make_excerpt("short") == "short"
    assert make_excerpt("") == ""
    long_text = "x" * 250
    assert make_excerpt(long_text) == "x" * 200 + "..."
