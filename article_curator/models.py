"""
Core data types for the collection pipeline.

Items are created by source adapters with a relevance score of 0.0, scored
exactly once by the relevance scorer, and only kept or dropped afterwards.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SourceTag(Enum):
    QIITA = "qiita"
    ZENN = "zenn"
    HACKERNEWS = "hackernews"
    DEVTO = "devto"


@dataclass
class Item:
    """A single collected content record."""
    id: str                 # "<source>-<source-local id>"
    title: str
    url: str
    author: str
    published_at: datetime
    source: SourceTag
    tags: list[str] = field(default_factory=list)
    excerpt: str | None = None
    popularity: float | None = None   # source-native score (likes, points, ...)
    relevance_score: float = 0.0
    _scored: bool = field(default=False, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.popularity is not None and self.popularity < 0:
            raise ValueError(f"popularity must be non-negative, got {self.popularity}")
        if self.relevance_score != 0.0:
            raise ValueError("New items are unscored; use assign_relevance_score")

    @property
    def corpus(self) -> str:
        """Lowercase searchable text: title, excerpt and tags."""
        return f"{self.title} {self.excerpt or ''} {' '.join(self.tags)}".lower()

    @property
    def is_scored(self) -> bool:
        return self._scored

    def assign_relevance_score(self, score: float) -> None:
        """Set the relevance score. Allowed once per item."""
        if self._scored:
            raise ValueError(f"Item {self.id} has already been scored")
        if not 0.0 <= score <= 1.0:
            raise ValueError(f"relevance score must be in [0, 1], got {score}")
        self.relevance_score = score
        self._scored = True

    def __repr__(self) -> str:
        return f"Item({self.source.value}, {self.title[:50]!r}, relevance={self.relevance_score:.3f})"


@dataclass(frozen=True)
class CollectionError:
    """One source that failed during a collection run."""
    source: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class CollectionResult:
    """Final output of a collection run."""
    items: tuple[Item, ...]
    errors: tuple[CollectionError, ...]
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def source_breakdown(self) -> dict[str, int]:
        """Number of items per source tag."""
        return dict(Counter(item.source.value for item in self.items))


@dataclass(frozen=True)
class SourceSucceeded:
    """Outcome of an adapter call that returned items."""
    source: str
    items: list[Item]


@dataclass(frozen=True)
class SourceFailed:
    """Outcome of an adapter call that failed after all retries."""
    source: str
    error: BaseException


SourceOutcome = SourceSucceeded | SourceFailed
