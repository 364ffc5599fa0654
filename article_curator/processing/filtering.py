"""
Filter and rank stage.

Drops items matching an exclude keyword, applies the minimum relevance
threshold, sorts by relevance (stable, descending) and truncates to the
configured daily maximum. Items are never modified here.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

import structlog

from ..config import FilterCriteria
from ..logging import get_logger, log_processing_stage
from ..models import Item


@dataclass(frozen=True)
class FilterReport:
    """How many items each step removed."""
    input_count: int
    excluded: int
    below_threshold: int
    truncated: int

    @property
    def output_count(self) -> int:
        return self.input_count - self.excluded - self.below_threshold - self.truncated


def contains_exclude_keywords(item: Item, exclude_keywords: list[str]) -> str | None:
    """Return the first exclude keyword found in the item's corpus, if any."""
    if not exclude_keywords:
        return None
    corpus = item.corpus
    for keyword in exclude_keywords:
        needle = keyword.lower()
        if needle and needle in corpus:
            return keyword
    return None


def rank_by_relevance(items: list[Item]) -> list[Item]:
    """Sort by relevance descending; ties keep their input order."""
    return sorted(items, key=lambda item: item.relevance_score, reverse=True)


class FilterRankStage:
    """Exclude, threshold, sort and limit scored items."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None):
        self.logger = logger or get_logger(__name__)
        self.last_report: FilterReport | None = None

    def apply(self, items: list[Item], criteria: FilterCriteria) -> list[Item]:
        """Select the final ranked subset.

        Args:
            items: Scored items
            criteria: Exclusion keywords, threshold and cap

        Returns:
            New list of at most ``criteria.max_articles_per_day`` items
        """
        kept = []
        for item in items:
            matched = contains_exclude_keywords(item, criteria.exclude_keywords)
            if matched is not None:
                self.logger.debug("Excluded by keyword", keyword=matched, title=item.title)
                continue
            kept.append(item)
        excluded = len(items) - len(kept)

        relevant = [item for item in kept if item.relevance_score >= criteria.min_relevance_score]
        below_threshold = len(kept) - len(relevant)

        ranked = rank_by_relevance(relevant)
        limited = ranked[:criteria.max_articles_per_day]

        self.last_report = FilterReport(
            input_count=len(items),
            excluded=excluded,
            below_threshold=below_threshold,
            truncated=len(ranked) - len(limited),
        )
        self.logger.info(**log_processing_stage(
            stage="filter",
            input_count=len(items),
            output_count=len(limited),
            excluded=excluded,
            below_threshold=below_threshold,
            truncated=self.last_report.truncated,
        ))
        return limited


def group_by_source(items: list[Item]) -> dict[str, list[Item]]:
    """Group items by source tag value, keeping their order."""
    groups: dict[str, list[Item]] = defaultdict(list)
    for item in items:
        groups[item.source.value].append(item)
    return dict(groups)


def top_items(items: list[Item], count: int) -> list[Item]:
    return rank_by_relevance(items)[:count]


def items_in_date_range(items: list[Item], start: datetime, end: datetime) -> list[Item]:
    """Items published within [start, end]."""
    return [item for item in items if start <= item.published_at <= end]


def filtering_summary(original_count: int, filtered_count: int, criteria: FilterCriteria) -> str:
    """Human-readable summary of a filtering pass."""
    if original_count:
        reduction = (original_count - filtered_count) / original_count * 100
    else:
        reduction = 0.0
    return "\n".join([
        "Filtering summary",
        f"- Original items: {original_count}",
        f"- After filtering: {filtered_count} ({reduction:.1f}% reduction)",
        f"- Minimum relevance: {criteria.min_relevance_score}",
        f"- Maximum items: {criteria.max_articles_per_day}",
        f"- Exclude keywords: {len(criteria.exclude_keywords)}",
    ])
