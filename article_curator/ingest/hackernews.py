"""Hacker News adapter backed by the Algolia search API."""

import html
import re
from datetime import datetime, timezone
from typing import Any

from ..models import Item, SourceTag
from ..utils import extract_domain, parse_date_string
from .sources import SourceAdapter

ALGOLIA_SEARCH_URL = "https://hn.algolia.com/api/v1/search"
HN_ITEM_URL = "https://news.ycombinator.com/item?id={}"
MIN_POINTS_FILTER = 5

_PREFIX_RE = re.compile(r"^(Show HN|Ask HN|Tell HN):\s*", re.IGNORECASE)

TECH_KEYWORDS = (
    "ai", "machine learning", "deep learning", "neural network", "chatgpt", "gpt",
    "openai", "llm", "transformer", "python", "javascript", "typescript", "go",
    "rust", "react", "vue", "node", "docker", "kubernetes", "aws", "gcp", "azure",
    "github",
)

SPECIAL_TAGS = ("Show HN", "Ask HN", "Tell HN")


def extract_tags(raw_title: str, title: str, url: str) -> list[str]:
    """Tech keywords found in the title or URL, plus Show/Ask/Tell HN markers."""
    title_lower = title.lower()
    url_lower = url.lower()
    tags = [kw for kw in TECH_KEYWORDS if kw in title_lower or kw in url_lower]
    for special in SPECIAL_TAGS:
        if raw_title.lower().startswith(special.lower()):
            tags.append(special)
    return list(dict.fromkeys(tags))


class HackerNewsAdapter(SourceAdapter):
    """Searches Hacker News stories through Algolia."""

    name = "hackernews"
    source_tag = SourceTag.HACKERNEWS
    default_min_score = 10
    default_timeout_ms = 15000
    hits_per_page = 50

    def __init__(self, search_url: str = ALGOLIA_SEARCH_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.search_url = search_url

    def search_params(self, term: str, page: int, since: datetime | None) -> dict[str, Any]:
        numeric_filters = f"points>{MIN_POINTS_FILTER}"
        if since is not None:
            numeric_filters += f",created_at_i>{int(since.timestamp())}"
        return {
            "query": term,
            "tags": "story",
            "hitsPerPage": self.hits_per_page,
            "page": page,
            "numericFilters": numeric_filters,
        }

    async def fetch_term(self, term: str, since: datetime | None) -> list[Item]:
        items = await self._collect_pages(
            self.search_url,
            term,
            lambda page: self.search_params(term, page, since),
            self.hits_per_page,
            first_page=0,
        )
        return [item for item in items if (item.popularity or 0) >= self.min_score]

    def extract_records(self, payload: Any) -> list[Any]:
        if isinstance(payload, dict):
            return payload.get("hits") or []
        return []

    def transform(self, record: Any, term: str | None = None) -> Item:
        try:
            object_id = record.get("objectID")
            raw_title = record.get("title")
            if not raw_title or not object_id:
                raise ValueError("hit missing title or objectID")
            if raw_title in ("[deleted]", "[dead]"):
                raise ValueError(f"hit is {raw_title}")

            url = record.get("url") or HN_ITEM_URL.format(object_id)
            published_at = parse_date_string(record.get("created_at") or "")
            if published_at is None:
                published_at = datetime.now(timezone.utc)

            title = _PREFIX_RE.sub("", html.unescape(raw_title.strip()))
            domain = extract_domain(url)
            excerpt = f"{title} ({domain})" if domain and domain != "news.ycombinator.com" else title

            return Item(
                id=f"hackernews-{object_id}",
                title=title,
                url=url,
                author=record.get("author") or "Unknown",
                published_at=published_at,
                source=self.source_tag,
                tags=extract_tags(raw_title, title, url),
                excerpt=excerpt,
                popularity=record.get("points") or 0,
            )
        except (TypeError, AttributeError, ValueError) as e:
            raise self._transform_error("Failed to transform Hacker News hit", record, e) from e
