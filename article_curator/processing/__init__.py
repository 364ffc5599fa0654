"""Deduplication, scoring and filtering of collected items."""

from .dedupe import DuplicateReason, Deduplicator, normalize_url, title_similarity
from .filtering import FilterRankStage, filtering_summary, group_by_source, top_items
from .scoring import DEFAULT_KEYWORD_WEIGHTS, KeywordWeight, RelevanceScorer
from .text_utils import levenshtein_distance, normalize_title, similarity_ratio

__all__ = [
    'Deduplicator',
    'DuplicateReason',
    'normalize_url',
    'title_similarity',
    'FilterRankStage',
    'filtering_summary',
    'group_by_source',
    'top_items',
    'RelevanceScorer',
    'KeywordWeight',
    'DEFAULT_KEYWORD_WEIGHTS',
    'normalize_title',
    'levenshtein_distance',
    'similarity_ratio',
]
