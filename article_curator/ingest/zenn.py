"""Zenn topic RSS feed adapter."""

import re
from datetime import datetime
from typing import Any

import feedparser

from ..errors import AdapterError
from ..models import Item, SourceTag
from ..utils import clean_text, html_to_text, parse_date_string
from .sources import SourceAdapter, make_excerpt

ZENN_BASE_URL = "https://zenn.dev"

_SLUG_RE = re.compile(r"/([^/]+)$")


class ZennAdapter(SourceAdapter):
    """Collects Zenn articles from per-topic RSS feeds."""

    name = "zenn"
    source_tag = SourceTag.ZENN
    max_items_per_topic = 50

    def __init__(self, base_url: str = ZENN_BASE_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url

    def feed_url(self, topic: str) -> str:
        return f"{self.base_url}/topics/{topic}/feed"

    async def fetch_term(self, term: str, since: datetime | None) -> list[Item]:
        xml = await self._fetch_text(self.feed_url(term))
        items = self.parse_feed(xml, term)
        recent = [item for item in items if since is None or item.published_at >= since]
        limited = recent[:self.max_items_per_topic]
        self.logger.debug(
            "Feed parsed", topic=term, parsed=len(items), recent=len(recent), kept=len(limited)
        )
        return limited

    def parse_feed(self, xml: str, topic: str) -> list[Item]:
        """Parse an RSS document into Items tagged with the topic."""
        feed = feedparser.parse(xml)
        if feed.bozo and not feed.entries:
            raise AdapterError(
                f"Failed to parse Zenn RSS for topic '{topic}': {feed.get('bozo_exception')}",
                source=self.name,
            )
        if not feed.entries:
            self.logger.warning("No entries in feed", topic=topic)
            return []
        return self._transform_records(list(feed.entries), topic)

    def transform(self, record: Any, term: str | None = None) -> Item:
        title = record.get("title")
        link = record.get("link")
        published = record.get("published") or record.get("updated")
        if not title or not link or not published:
            raise self._transform_error("RSS item missing required fields", {"id": link})

        published_at = parse_date_string(published)
        if published_at is None:
            raise self._transform_error(f"Unparseable publish date {published!r}", {"id": link})

        match = _SLUG_RE.search(link.rstrip("/"))
        if not match:
            raise self._transform_error("Cannot derive id from link", {"id": link})

        description = record.get("summary") or record.get("description") or ""
        return Item(
            id=f"zenn-{match.group(1)}",
            title=clean_text(title),
            url=link,
            author=clean_text(record.get("author") or "") or "Unknown",
            published_at=published_at,
            source=self.source_tag,
            tags=[term] if term else [],
            excerpt=make_excerpt(html_to_text(description)),
        )
