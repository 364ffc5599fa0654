"""Source adapter framework and registry."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import aiohttp
import structlog

from ..config import CuratorConfig, Settings, SourceSettings, get_settings
from ..errors import AdapterError, ItemTransformError
from ..logging import get_logger, log_processing_stage
from ..models import Item, SourceTag

EXCERPT_LENGTH = 200

ParamsBuilder = Callable[[int], dict[str, Any]]


def make_excerpt(text: str, max_length: int = EXCERPT_LENGTH) -> str:
    """Cut text to ``max_length`` characters, appending an ellipsis when cut."""
    if not text:
        return ""
    return text if len(text) <= max_length else text[:max_length] + "..."


class SourceAdapter(ABC):
    """Abstract base class for content source adapters.

    Subclasses fetch one search term at a time and turn raw records into
    Items through ``transform``. A record that cannot be transformed raises
    ItemTransformError and is skipped; the adapter only fails when a batch of
    raw records yields no item at all.
    """

    name: str = ""
    source_tag: SourceTag
    default_min_score = 0
    default_timeout_ms = 10000
    rate_limit_header: str | None = None

    def __init__(
        self,
        enabled: bool = True,
        search_terms: list[str] | None = None,
        max_articles: int | None = None,
        max_pages: int = 3,
        min_score: int | None = None,
        request_interval_ms: int = 200,
        user_agent: str = "AI-Article-Curator/0.1",
        timeout_ms: float | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.enabled = enabled
        self.search_terms = list(search_terms or [])
        self.max_articles = max_articles
        self.max_pages = max_pages
        self.min_score = self.default_min_score if min_score is None else min_score
        self.request_interval_ms = request_interval_ms
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms or self.default_timeout_ms
        self.logger = logger or get_logger(__name__).bind(source=self.name)
        self._sleep = sleep
        self.session: aiohttp.ClientSession | None = None

    @classmethod
    def from_settings(
        cls,
        source: SourceSettings,
        settings: Settings,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> "SourceAdapter":
        """Build an adapter from its configuration section."""
        return cls(
            enabled=source.enabled,
            search_terms=source.search_terms,
            max_articles=source.max_articles,
            max_pages=source.max_pages,
            min_score=source.min_score,
            request_interval_ms=source.request_interval_ms,
            user_agent=settings.user_agent,
            logger=logger,
        )

    async def __aenter__(self):
        timeout = aiohttp.ClientTimeout(total=self.timeout_ms / 1000)
        self.session = aiohttp.ClientSession(timeout=timeout, headers=self.request_headers())
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            await self.session.close()
            self.session = None

    def request_headers(self) -> dict[str, str]:
        return {"User-Agent": self.user_agent}

    async def collect(self, search_params: list[str] | None = None, since: datetime | None = None) -> list[Item]:
        """Collect items for every search term.

        Args:
            search_params: Source-specific search terms; defaults to the configured ones
            since: Drop items published before this instant

        Returns:
            Items unique by URL, newest-window only, capped at ``max_articles``
        """
        terms = self.search_terms if search_params is None else list(search_params)
        self.logger.info("Source collection started", terms=len(terms))

        collected: list[Item] = []
        async with self:
            for index, term in enumerate(terms):
                term_items = await self.fetch_term(term, since)
                self.logger.debug("Collected term", term=term, count=len(term_items))
                collected.extend(term_items)
                if index < len(terms) - 1:
                    await self._sleep(self.request_interval_ms / 1000)

        unique = self._unique_by_url(collected)
        recent = [item for item in unique if since is None or item.published_at >= since]
        limited = recent[:self.max_articles] if self.max_articles else recent

        self.logger.info(**log_processing_stage(
            stage=f"collect_{self.name}",
            input_count=len(collected),
            output_count=len(limited),
            url_duplicates=len(collected) - len(unique),
        ))
        return limited

    @abstractmethod
    async def fetch_term(self, term: str, since: datetime | None) -> list[Item]:
        """Fetch and transform all items for one search term."""
        pass

    @abstractmethod
    def transform(self, record: Any, term: str | None = None) -> Item:
        """Turn one raw record into an Item.

        Raises:
            ItemTransformError: If the record is malformed
        """
        pass

    async def _fetch_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        if not self.session:
            raise RuntimeError("Session not initialized. Use async context manager.")

        self.logger.debug("Fetching JSON", url=url, params=params)
        async with self.session.get(url, params=params) as response:
            response.raise_for_status()
            self._log_rate_limit(response)
            return await response.json(content_type=None)

    async def _fetch_text(self, url: str, params: dict[str, Any] | None = None) -> str:
        if not self.session:
            raise RuntimeError("Session not initialized. Use async context manager.")

        self.logger.debug("Fetching text", url=url)
        async with self.session.get(url, params=params) as response:
            response.raise_for_status()
            return await response.text()

    def _log_rate_limit(self, response: aiohttp.ClientResponse) -> None:
        if not self.rate_limit_header:
            return
        remaining = response.headers.get(self.rate_limit_header)
        if remaining is None:
            return
        self.logger.debug("API rate limit remaining", remaining=remaining)
        if remaining.isdigit() and int(remaining) < 10:
            self.logger.warning("API rate limit nearly exhausted", remaining=remaining)

    async def _collect_pages(
        self,
        url: str,
        term: str,
        build_params: ParamsBuilder,
        page_size: int,
        first_page: int = 1,
    ) -> list[Item]:
        """Fetch consecutive pages until a short page or ``max_pages``.

        A failure on the first page propagates; a later page failure ends
        pagination and keeps what was collected.
        """
        items: list[Item] = []
        last_page = first_page + self.max_pages - 1

        for page in range(first_page, last_page + 1):
            try:
                payload = await self._fetch_json(url, build_params(page))
            except (aiohttp.ClientError, TimeoutError) as e:
                if page == first_page:
                    raise
                self.logger.warning("Page fetch failed, stopping", term=term, page=page, error=str(e))
                break

            records = self.extract_records(payload)
            if not records:
                self.logger.debug("No records on page", term=term, page=page)
                break

            page_items = self._transform_records(records, term)
            items.extend(page_items)
            self.logger.debug(
                "Page collected", term=term, page=page, records=len(records), items=len(page_items)
            )

            if len(records) < page_size:
                break
            if page < last_page:
                await self._sleep(self.request_interval_ms / 1000)

        return items

    def extract_records(self, payload: Any) -> list[Any]:
        """Raw record list contained in one API response."""
        return payload if isinstance(payload, list) else []

    def _transform_records(self, records: list[Any], term: str | None = None) -> list[Item]:
        items = []
        for record in records:
            try:
                items.append(self.transform(record, term))
            except ItemTransformError as e:
                self.logger.warning(
                    "Skipping malformed record", record_id=e.record_id, error=e.message
                )

        if records and not items:
            raise AdapterError(
                f"None of {len(records)} records from {self.name} could be transformed",
                source=self.name,
                term=term,
            )
        return items

    def _transform_error(self, message: str, record: Any, cause: BaseException | None = None) -> ItemTransformError:
        record_id = None
        if isinstance(record, dict):
            record_id = record.get("id") or record.get("objectID")
        detail = f"{message}: {cause}" if cause else message
        return ItemTransformError(detail, source=self.name, record_id=str(record_id) if record_id else None)

    @staticmethod
    def _unique_by_url(items: list[Item]) -> list[Item]:
        seen: set[str] = set()
        unique = []
        for item in items:
            if item.url in seen:
                continue
            seen.add(item.url)
            unique.append(item)
        return unique

    def __repr__(self) -> str:
        state = "enabled" if self.enabled else "disabled"
        return f"<{self.__class__.__name__} {self.name} {state} terms={len(self.search_terms)}>"


def adapter_classes() -> dict[str, type[SourceAdapter]]:
    """Adapter class per configuration key."""
    from .devto import DevToAdapter
    from .hackernews import HackerNewsAdapter
    from .qiita import QiitaAdapter
    from .zenn import ZennAdapter

    return {
        "qiita": QiitaAdapter,
        "zenn": ZennAdapter,
        "hackernews": HackerNewsAdapter,
        "devto": DevToAdapter,
    }


def build_adapters(
    config: CuratorConfig,
    settings: Settings | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> list[SourceAdapter]:
    """Create one adapter per known source; disabled sources stay in the list."""
    settings = settings or get_settings()
    logger = logger or get_logger(__name__)
    classes = adapter_classes()

    adapters = []
    for name, source in config.sources.items():
        adapter = classes[name].from_settings(source, settings, logger=logger.bind(source=name))
        adapters.append(adapter)

    logger.info(
        "Adapters built",
        enabled=[a.name for a in adapters if a.enabled],
        disabled=[a.name for a in adapters if not a.enabled],
    )
    return adapters
