"""
Weighted keyword relevance scoring.

Each item gets a score in [0, 1] computed from substring matches of a fixed
keyword weight table and caller-supplied custom keywords (weight 0.5), plus
bonuses for title matches, tag matches and source popularity. The sum is
divided by a fixed constant and clamped to 1.0.
"""

from dataclasses import dataclass

import structlog

from ..logging import get_logger, log_processing_stage
from ..models import Item

CUSTOM_KEYWORD_WEIGHT = 0.5
TITLE_BONUS_RATIO = 0.3
TAG_BONUS_RATIO = 0.2
NORMALIZATION_DIVISOR = 3.0

# (threshold, bonus), checked in order
POPULARITY_BONUSES = ((100, 0.2), (50, 0.1), (20, 0.05))


@dataclass(frozen=True)
class KeywordWeight:
    """A keyword and its weight in [0, 1]."""
    keyword: str
    weight: float


DEFAULT_KEYWORD_WEIGHTS: tuple[KeywordWeight, ...] = (
    # High importance
    KeywordWeight("chatgpt", 1.0),
    KeywordWeight("gpt", 1.0),
    KeywordWeight("openai", 1.0),
    KeywordWeight("claude", 1.0),
    KeywordWeight("llm", 1.0),
    KeywordWeight("大規模言語モデル", 1.0),
    KeywordWeight("transformer", 0.9),
    KeywordWeight("bert", 0.9),

    # Medium importance
    KeywordWeight("ai", 0.8),
    KeywordWeight("人工知能", 0.8),
    KeywordWeight("machine learning", 0.8),
    KeywordWeight("機械学習", 0.8),
    KeywordWeight("deep learning", 0.8),
    KeywordWeight("ディープラーニング", 0.8),
    KeywordWeight("neural network", 0.7),
    KeywordWeight("ニューラルネットワーク", 0.7),

    # Specific fields
    KeywordWeight("nlp", 0.6),
    KeywordWeight("自然言語処理", 0.6),
    KeywordWeight("computer vision", 0.6),
    KeywordWeight("画像認識", 0.6),
    KeywordWeight("画像生成", 0.6),
    KeywordWeight("stable diffusion", 0.7),
    KeywordWeight("midjourney", 0.7),
    KeywordWeight("dalle", 0.7),

    # Tooling
    KeywordWeight("pytorch", 0.5),
    KeywordWeight("tensorflow", 0.5),
    KeywordWeight("huggingface", 0.5),
    KeywordWeight("rag", 0.6),
    KeywordWeight("fine-tuning", 0.5),
    KeywordWeight("embedding", 0.5),
)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Components of one relevance score."""
    raw_score: float
    title_bonus: float
    tag_bonus: float
    popularity_bonus: float
    matched_keywords: tuple[str, ...]

    @property
    def final_score(self) -> float:
        total = self.raw_score + self.title_bonus + self.tag_bonus + self.popularity_bonus
        return min(1.0, total / NORMALIZATION_DIVISOR)


def popularity_bonus(popularity: float | None) -> float:
    """Bonus for source-native popularity (likes, points, reactions)."""
    if not popularity:
        return 0.0
    for threshold, bonus in POPULARITY_BONUSES:
        if popularity > threshold:
            return bonus
    return 0.0


class RelevanceScorer:
    """Keyword-weighted relevance scorer."""

    def __init__(
        self,
        keyword_weights: tuple[KeywordWeight, ...] | list[KeywordWeight] = DEFAULT_KEYWORD_WEIGHTS,
        logger: structlog.stdlib.BoundLogger | None = None,
    ):
        for entry in keyword_weights:
            if not 0.0 <= entry.weight <= 1.0:
                raise ValueError(f"Keyword weight out of range for {entry.keyword!r}: {entry.weight}")
        self.keyword_weights = tuple(
            KeywordWeight(entry.keyword.lower(), entry.weight) for entry in keyword_weights
        )
        self.logger = logger or get_logger(__name__)

    def breakdown(self, item: Item, custom_keywords: list[str] | None = None) -> ScoreBreakdown:
        """Compute every component of an item's relevance score."""
        corpus = item.corpus
        title = item.title.lower()
        matched: list[str] = []

        raw_score = 0.0
        for entry in self.keyword_weights:
            if entry.keyword in corpus:
                raw_score += entry.weight
                matched.append(entry.keyword)

        for keyword in custom_keywords or []:
            needle = keyword.lower()
            if needle and needle in corpus:
                raw_score += CUSTOM_KEYWORD_WEIGHT
                matched.append(needle)

        title_bonus = sum(
            entry.weight * TITLE_BONUS_RATIO
            for entry in self.keyword_weights
            if entry.keyword in title
        )

        tag_bonus = 0.0
        for tag in item.tags:
            tag_text = tag.lower()
            for entry in self.keyword_weights:
                if entry.keyword in tag_text:
                    tag_bonus += entry.weight * TAG_BONUS_RATIO

        return ScoreBreakdown(
            raw_score=raw_score,
            title_bonus=title_bonus,
            tag_bonus=tag_bonus,
            popularity_bonus=popularity_bonus(item.popularity),
            matched_keywords=tuple(matched),
        )

    def score(self, item: Item, custom_keywords: list[str] | None = None) -> float:
        """Relevance of one item in [0, 1]. Does not modify the item."""
        result = self.breakdown(item, custom_keywords)
        final = result.final_score
        self.logger.debug(
            "Relevance score computed",
            title=item.title[:50],
            score=round(final, 3),
            matches=len(result.matched_keywords),
            title_bonus=round(result.title_bonus, 3),
            tag_bonus=round(result.tag_bonus, 3),
            popularity_bonus=result.popularity_bonus,
        )
        return final

    def score_items(self, items: list[Item], custom_keywords: list[str] | None = None) -> list[Item]:
        """Assign the relevance score of every item (once per item)."""
        for item in items:
            item.assign_relevance_score(self.score(item, custom_keywords))

        self.logger.info(**log_processing_stage(
            stage="score",
            input_count=len(items),
            output_count=len(items),
            top_score=round(max((i.relevance_score for i in items), default=0.0), 3),
        ))
        return items

    def default_keywords(self) -> list[str]:
        return [entry.keyword for entry in self.keyword_weights]
