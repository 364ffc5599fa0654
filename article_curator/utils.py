"""Utility functions for the article curator."""

import re
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TypeVar
from urllib.parse import urlparse

from selectolax.parser import HTMLParser

from .logging import get_logger

T = TypeVar('T')


def extract_domain(url: str) -> str:
    """Extract domain from URL without a leading "www.".

    Args:
        url: URL string

    Returns:
        Domain name, empty when the URL has none
    """
    try:
        domain = urlparse(url).netloc.lower()
    except ValueError:
        return ""
    return domain[4:] if domain.startswith("www.") else domain


def parse_date_string(date_str: str) -> datetime | None:
    """Parse ISO 8601, RFC 2822 and a few common date formats.

    Args:
        date_str: Date string to parse

    Returns:
        Timezone-aware datetime or None if parsing fails
    """
    if not date_str:
        return None

    date_str = date_str.strip()

    try:
        parsed = datetime.fromisoformat(date_str.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    except ValueError:
        pass

    # RFC 2822, common in RSS feeds: "Thu, 17 Jul 2025 23:17:14 GMT"
    try:
        parsed = parsedate_to_datetime(date_str)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    except (ValueError, TypeError):
        pass

    formats = [
        "%Y-%m-%d %H:%M:%S",
        "%Y/%m/%d %H:%M:%S",
        "%Y/%m/%d",
        "%B %d, %Y",
        "%b %d, %Y",
    ]

    for fmt in formats:
        try:
            return datetime.strptime(date_str, fmt).replace(tzinfo=UTC)
        except ValueError:
            continue

    get_logger(__name__).warning("Failed to parse date string", date_string=date_str)
    return None


def clean_text(text: str) -> str:
    """Strip tags, decode common entities and collapse whitespace.

    Args:
        text: Raw text

    Returns:
        Cleaned text
    """
    if not text:
        return ""

    text = re.sub(r'<[^>]*>', '', text)

    html_entities = {
        '&lt;': '<',
        '&gt;': '>',
        '&quot;': '"',
        '&#39;': "'",
        '&nbsp;': ' ',
        '&amp;': '&',
    }

    for entity, replacement in html_entities.items():
        text = text.replace(entity, replacement)

    return re.sub(r'\s+', ' ', text).strip()


def html_to_text(html: str) -> str:
    """Extract readable text from an HTML fragment."""
    if not html:
        return ""
    tree = HTMLParser(html)
    if tree.body is None:
        return clean_text(html)
    return re.sub(r'\s+', ' ', tree.body.text(separator=" ")).strip()


def strip_markdown(body: str) -> str:
    """Remove common Markdown markup, leaving plain text."""
    if not body:
        return ""
    text = re.sub(r'```[\s\S]*?```', '[code]', body)
    text = re.sub(r'#{1,6}\s+', '', text)
    text = re.sub(r'\*\*(.*?)\*\*', r'\1', text)
    text = re.sub(r'\*(.*?)\*', r'\1', text)
    text = re.sub(r'`(.*?)`', r'\1', text)
    text = re.sub(r'!?\[([^\]]*)\]\([^)]*\)', r'\1', text)
    text = re.sub(r'\n+', ' ', text)
    return text.strip()


def truncate_text(text: str, max_length: int, suffix: str = "...") -> str:
    """Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length including the suffix
        suffix: Suffix to add if truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text

    return text[:max_length - len(suffix)] + suffix


def chunk_list(items: list[T], chunk_size: int) -> list[list[T]]:
    """Split list into chunks of specified size.

    Args:
        items: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    return [items[i:i + chunk_size] for i in range(0, len(items), chunk_size)]
