"""Qiita API v2 adapter."""

from datetime import datetime
from typing import Any

from ..config import Settings, SourceSettings
from ..models import Item, SourceTag
from ..utils import parse_date_string, strip_markdown
from .sources import SourceAdapter, make_excerpt

QIITA_API_URL = "https://qiita.com/api/v2"


class QiitaAdapter(SourceAdapter):
    """Collects recent Qiita items by tag."""

    name = "qiita"
    source_tag = SourceTag.QIITA
    rate_limit_header = "Rate-Remaining"
    items_per_page = 100

    def __init__(self, access_token: str | None = None, base_url: str = QIITA_API_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.access_token = access_token
        self.base_url = base_url

    @classmethod
    def from_settings(cls, source: SourceSettings, settings: Settings, logger=None) -> "QiitaAdapter":
        adapter = super().from_settings(source, settings, logger)
        adapter.access_token = settings.qiita_access_token
        return adapter

    def request_headers(self) -> dict[str, str]:
        headers = super().request_headers()
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def fetch_term(self, term: str, since: datetime | None) -> list[Item]:
        def params(page: int) -> dict[str, Any]:
            return {
                "query": f"tag:{term}",
                "per_page": self.items_per_page,
                "page": page,
                "sort": "created",
            }

        items = await self._collect_pages(
            f"{self.base_url}/items", term, params, self.items_per_page
        )
        return [item for item in items if since is None or item.published_at >= since]

    def transform(self, record: Any, term: str | None = None) -> Item:
        try:
            user = record.get("user") or {}
            published_at = parse_date_string(record["created_at"])
            if published_at is None:
                raise ValueError(f"unparseable created_at {record['created_at']!r}")

            return Item(
                id=f"qiita-{record['id']}",
                title=record["title"].strip(),
                url=record["url"],
                author=user.get("name") or user.get("id") or "Unknown",
                published_at=published_at,
                source=self.source_tag,
                tags=[tag["name"] for tag in record.get("tags") or []],
                excerpt=make_excerpt(strip_markdown(record.get("body") or "")),
                popularity=(record.get("likes_count") or 0) + (record.get("stocks_count") or 0),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise self._transform_error("Failed to transform Qiita item", record, e) from e
