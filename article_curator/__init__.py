"""AI Article Curator - collect, deduplicate, score and deliver AI articles."""

__version__ = "0.1.0"
