"""Text normalization helpers used by deduplication and scoring."""

import re

# Fullwidth Latin letters and digits (Ａ-Ｚ, ａ-ｚ, ０-９) sit 0xFEE0 above ASCII.
_FULLWIDTH_RE = re.compile(r"[Ａ-Ｚａ-ｚ０-９]")
_WHITESPACE_RE = re.compile(r"\s+")
_DATE_RE = re.compile(r"[0-9]{4}[年/\-][0-9]{1,2}[月/\-][0-9]{1,2}日?")
_VERSION_RE = re.compile(r"v?[0-9]+\.[0-9]+(?:\.[0-9]+)?")

DATE_PLACEHOLDER = "YYYY-MM-DD"
VERSION_PLACEHOLDER = "vX.X.X"

# Keeps ASCII word characters, whitespace, Hiragana, Katakana and CJK ideographs.
# Placeholders are matched first so their punctuation survives the strip.
_STRIP_RE = re.compile(
    rf"({re.escape(DATE_PLACEHOLDER)}|{re.escape(VERSION_PLACEHOLDER)})"
    r"|[^0-9A-Za-z_\s\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]"
)


def to_halfwidth(text: str) -> str:
    """Map fullwidth Latin letters and digits to their ASCII equivalents."""
    return _FULLWIDTH_RE.sub(lambda m: chr(ord(m.group(0)) - 0xFEE0), text)


def normalize_title(title: str) -> str:
    """Canonical form of a title for duplicate detection.

    Lowercases, trims, folds fullwidth characters, collapses whitespace,
    replaces dates with ``YYYY-MM-DD`` and version numbers with ``vX.X.X``,
    then drops punctuation and symbols.

    Args:
        title: Item title

    Returns:
        Normalized title
    """
    if not title:
        return ""

    text = title.lower().strip()
    text = to_halfwidth(text)
    text = _WHITESPACE_RE.sub(" ", text)
    text = _DATE_RE.sub(DATE_PLACEHOLDER, text)
    text = _VERSION_RE.sub(VERSION_PLACEHOLDER, text)
    return _STRIP_RE.sub(lambda m: m.group(1) or "", text)


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,         # deletion
                current[j - 1] + 1,      # insertion
                previous[j - 1] + cost,  # substitution
            ))
        previous = current
    return previous[-1]


def similarity_ratio(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``; two empty strings are identical."""
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))
