"""Dev.to (Forem) API adapter."""

from datetime import datetime
from typing import Any

from ..config import Settings, SourceSettings
from ..models import Item, SourceTag
from ..utils import clean_text, parse_date_string
from .sources import SourceAdapter, make_excerpt

DEVTO_API_URL = "https://dev.to/api"
TOP_PERIOD_DAYS = 7


class DevToAdapter(SourceAdapter):
    """Collects Dev.to articles by tag; the first page is the week's top list."""

    name = "devto"
    source_tag = SourceTag.DEVTO
    default_min_score = 5
    rate_limit_header = "X-RateLimit-Remaining"
    articles_per_page = 30

    def __init__(self, api_key: str | None = None, base_url: str = DEVTO_API_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.base_url = base_url

    @classmethod
    def from_settings(cls, source: SourceSettings, settings: Settings, logger=None) -> "DevToAdapter":
        adapter = super().from_settings(source, settings, logger)
        adapter.api_key = settings.devto_api_key
        return adapter

    def request_headers(self) -> dict[str, str]:
        headers = super().request_headers()
        if self.api_key:
            headers["api-key"] = self.api_key
        return headers

    def page_params(self, tag: str, page: int) -> dict[str, Any]:
        params: dict[str, Any] = {"tag": tag, "per_page": self.articles_per_page, "page": page}
        if page == 1:
            params["top"] = TOP_PERIOD_DAYS
        else:
            params["state"] = "fresh"
        return params

    async def fetch_term(self, term: str, since: datetime | None) -> list[Item]:
        items = await self._collect_pages(
            f"{self.base_url}/articles",
            term,
            lambda page: self.page_params(term, page),
            self.articles_per_page,
        )
        return [
            item for item in items
            if (since is None or item.published_at >= since)
            and (item.popularity or 0) >= self.min_score
        ]

    def transform(self, record: Any, term: str | None = None) -> Item:
        try:
            title = record.get("title")
            if not title or not record.get("url") or not record.get("published_at"):
                raise ValueError("article missing title, url or published_at")
            if "[deleted]" in title.lower():
                raise ValueError("article was deleted")

            published_at = parse_date_string(record["published_at"])
            if published_at is None:
                raise ValueError(f"unparseable published_at {record['published_at']!r}")

            user = record.get("user") or {}
            tags = record.get("tag_list") or []
            if isinstance(tags, str):
                tags = [tag.strip() for tag in tags.split(",") if tag.strip()]

            return Item(
                id=f"devto-{record['id']}",
                title=title.strip(),
                url=record["url"],
                author=user.get("name") or user.get("username") or "Unknown",
                published_at=published_at,
                source=self.source_tag,
                tags=list(tags),
                excerpt=make_excerpt(clean_text(record.get("description") or "")),
                popularity=record.get("positive_reactions_count") or 0,
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise self._transform_error("Failed to transform Dev.to article", record, e) from e
