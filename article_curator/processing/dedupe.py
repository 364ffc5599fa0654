"""
Deduplication of collected items by normalized identity.

An item is dropped when its normalized URL or normalized title was already
seen by the same Deduplicator instance. The seen-sets persist across calls on
one instance (and optionally across runs via save_state/load_state) until
clear() is called.

Near-duplicate title similarity (edit distance) is available through
is_similar_title() for auditing, but is never applied by admit().
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import orjson
import structlog

from ..logging import get_logger, log_processing_stage
from ..models import Item
from .text_utils import normalize_title, similarity_ratio

TRACKING_PARAMS = frozenset({"utm_source", "utm_medium", "utm_campaign", "ref", "source"})

DEFAULT_SIMILARITY_THRESHOLD = 0.8


class DuplicateReason(Enum):
    URL_DUPLICATE = "url_duplicate"
    TITLE_DUPLICATE = "title_duplicate"


@dataclass(frozen=True)
class AdmitDecision:
    """Outcome of admitting one item."""
    kept: bool
    normalized_url: str
    normalized_title: str
    reason: DuplicateReason | None = None


@dataclass(frozen=True)
class DuplicateRecord:
    """An item dropped as a duplicate."""
    item: Item
    reason: DuplicateReason
    key: str


def normalize_url(url: str, logger: structlog.stdlib.BoundLogger | None = None) -> str:
    """Canonical form of a URL for duplicate detection.

    Removes tracking query parameters and a trailing slash on the path
    (unless the path is exactly "/"). Unparseable URLs are returned trimmed.

    Args:
        url: Raw URL string

    Returns:
        Normalized URL
    """
    raw = url.strip()
    try:
        parts = urlsplit(raw)
    except ValueError:
        (logger or get_logger(__name__)).warning("URL normalization failed", url=url)
        return raw

    if not parts.scheme or not parts.netloc:
        (logger or get_logger(__name__)).warning("URL normalization failed", url=url)
        return raw

    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in TRACKING_PARAMS]
    )

    path = parts.path or "/"
    if path != "/" and path.endswith("/"):
        path = path[:-1]

    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, query, parts.fragment))


def title_similarity(title1: str, title2: str) -> float:
    """Similarity of two titles after normalization, in [0, 1]."""
    return similarity_ratio(normalize_title(title1), normalize_title(title2))


class Deduplicator:
    """Stateful filter that drops items with a previously seen URL or title."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self.logger = logger or get_logger(__name__)
        self.seen_urls: set[str] = set()
        self.seen_titles: set[str] = set()

    def admit(self, item: Item) -> AdmitDecision:
        """Decide whether to keep an item, recording it when kept."""
        url_key = normalize_url(item.url, self.logger)
        title_key = normalize_title(item.title)

        if url_key in self.seen_urls:
            self.logger.debug("Dropped URL duplicate", url=url_key, item_id=item.id)
            return AdmitDecision(False, url_key, title_key, DuplicateReason.URL_DUPLICATE)

        if title_key in self.seen_titles:
            self.logger.debug("Dropped title duplicate", title=item.title, item_id=item.id)
            return AdmitDecision(False, url_key, title_key, DuplicateReason.TITLE_DUPLICATE)

        self.seen_urls.add(url_key)
        self.seen_titles.add(title_key)
        return AdmitDecision(True, url_key, title_key)

    def deduplicate(self, items: list[Item]) -> tuple[list[Item], list[DuplicateRecord]]:
        """Admit items in arrival order.

        Returns:
            Kept items (original order) and the dropped duplicates
        """
        unique: list[Item] = []
        duplicates: list[DuplicateRecord] = []

        for item in items:
            decision = self.admit(item)
            if decision.kept:
                unique.append(item)
            elif decision.reason is DuplicateReason.URL_DUPLICATE:
                duplicates.append(DuplicateRecord(item, decision.reason, decision.normalized_url))
            else:
                duplicates.append(DuplicateRecord(item, decision.reason, decision.normalized_title))

        url_count = sum(1 for d in duplicates if d.reason is DuplicateReason.URL_DUPLICATE)
        self.logger.info(**log_processing_stage(
            stage="deduplicate",
            input_count=len(items),
            output_count=len(unique),
            url_duplicates=url_count,
            title_duplicates=len(duplicates) - url_count,
        ))
        return unique, duplicates

    def is_similar_title(
        self,
        title1: str,
        title2: str,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> bool:
        """Near-duplicate check by normalized edit distance."""
        normalized1 = normalize_title(title1)
        normalized2 = normalize_title(title2)
        if normalized1 == normalized2:
            return True
        return similarity_ratio(normalized1, normalized2) >= threshold

    def find_near_duplicates(
        self,
        items: list[Item],
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ) -> list[tuple[Item, Item, float]]:
        """Pairs of items whose titles are similar but not identical after normalization."""
        normalized = [(item, normalize_title(item.title)) for item in items]
        pairs = []
        for i, (first, title1) in enumerate(normalized):
            for second, title2 in normalized[i + 1:]:
                if title1 == title2:
                    continue
                score = similarity_ratio(title1, title2)
                if score >= threshold:
                    pairs.append((first, second, score))
        return pairs

    def clear(self) -> None:
        """Forget all seen URLs and titles."""
        self.seen_urls.clear()
        self.seen_titles.clear()
        self.logger.debug("Deduplication cache cleared")

    def cache_stats(self) -> dict[str, int]:
        return {"urls": len(self.seen_urls), "titles": len(self.seen_titles)}

    def save_state(self, path: Path) -> None:
        """Write the seen-sets to a JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"urls": sorted(self.seen_urls), "titles": sorted(self.seen_titles)}
        path.write_bytes(orjson.dumps(payload))
        self.logger.info("Saved deduplication state", path=str(path), **self.cache_stats())

    def load_state(self, path: Path) -> None:
        """Merge seen-sets from a file written by save_state(); a missing file is ignored."""
        if not path.exists():
            self.logger.debug("No deduplication state to load", path=str(path))
            return
        payload = orjson.loads(path.read_bytes())
        self.seen_urls.update(payload.get("urls", []))
        self.seen_titles.update(payload.get("titles", []))
        self.logger.info("Loaded deduplication state", path=str(path), **self.cache_stats())
