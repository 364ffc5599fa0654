"""Tests for the filter and rank stage."""

from datetime import datetime, timedelta, timezone

import pytest

from article_curator.config import FilterCriteria
from article_curator.models import SourceTag
from article_curator.processing.filtering import (
    FilterRankStage,
    contains_exclude_keywords,
    filtering_summary,
    group_by_source,
    items_in_date_range,
    rank_by_relevance,
    top_items,
)


@pytest.fixture
def scored(make_item):
    """Factory for items that already carry a relevance score."""
    def factory(score: float, **overrides):
        item = make_item(**overrides)
        item.assign_relevance_score(score)
        return item

    return factory


@pytest.fixture
def stage():
    return FilterRankStage()


def test_exclude_keywords_drop_items(stage, scored):
    keep = scored(0.8, title="LLM news")
    ad = scored(0.9, title="Sponsored: buy our GPU")
    hidden = scored(0.9, title="GPU deals", excerpt="This post is SPONSORED")

    result = stage.apply([keep, ad, hidden], FilterCriteria(exclude_keywords=["sponsored"]))

    assert result == [keep]
    assert stage.last_report.excluded == 2


def test_exclude_matches_tags(scored):
    item = scored(0.5, title="Benchmark", tags=["advertisement"])

    assert contains_exclude_keywords(item, ["Advertisement"]) == "Advertisement"
    assert contains_exclude_keywords(item, ["", "other"]) is None
    assert contains_exclude_keywords(item, []) is None


def test_threshold_is_inclusive(stage, scored):
    at = scored(0.3)
    below = scored(0.29)

    result = stage.apply([at, below], FilterCriteria(min_relevance_score=0.3))

    assert result == [at]
    assert stage.last_report.below_threshold == 1


def test_sorted_descending_with_stable_ties(stage, scored):
    first_tie = scored(0.5, title="first")
    high = scored(0.9, title="high")
    second_tie = scored(0.5, title="second")

    result = stage.apply([first_tie, high, second_tie], FilterCriteria(min_relevance_score=0.0))

    assert [item.title for item in result] == ["high", "first", "second"]


def test_limit_truncates_after_sorting(stage, scored):
    items = [scored(score) for score in (0.4, 0.9, 0.6, 0.7)]

    result = stage.apply(items, FilterCriteria(min_relevance_score=0.0, max_articles_per_day=2))

    assert [item.relevance_score for item in result] == [0.9, 0.7]
    report = stage.last_report
    assert report.truncated == 2
    assert report.output_count == 2


def test_apply_does_not_modify_input(stage, scored):
    items = [scored(0.2), scored(0.8)]
    snapshot = list(items)

    result = stage.apply(items, FilterCriteria(min_relevance_score=0.5))

    assert items == snapshot
    assert result is not items
    assert [item.relevance_score for item in items] == [0.2, 0.8]


def test_empty_input(stage):
    assert stage.apply([], FilterCriteria()) == []
    assert stage.last_report.output_count == 0


def test_rank_and_top_items(scored):
    items = [scored(0.1), scored(0.7), scored(0.4)]

    assert [i.relevance_score for i in rank_by_relevance(items)] == [0.7, 0.4, 0.1]
    assert [i.relevance_score for i in top_items(items, 1)] == [0.7]


def test_group_by_source(make_item):
    qiita = make_item(source=SourceTag.QIITA)
    hn = make_item(source=SourceTag.HACKERNEWS)
    qiita2 = make_item(source=SourceTag.QIITA)

    groups = group_by_source([qiita, hn, qiita2])

    assert groups == {"qiita": [qiita, qiita2], "hackernews": [hn]}


def test_items_in_date_range(make_item):
    now = datetime.now(timezone.utc)
    recent = make_item(published_at=now - timedelta(hours=1))
    old = make_item(published_at=now - timedelta(days=3))

    assert items_in_date_range([recent, old], now - timedelta(days=1), now) == [recent]


def test_filtering_summary():
    criteria = FilterCriteria(min_relevance_score=0.3, max_articles_per_day=50, exclude_keywords=["a", "b"])

    summary = filtering_summary(10, 4, criteria)

    assert summary.startswith("Filtering summary")
    assert "60.0% reduction" in summary
    assert "Exclude keywords: 2" in summary


def test_filtering_summary_with_no_input():
    summary = filtering_summary(0, 0, FilterCriteria())

    assert "0.0% reduction" in summary
