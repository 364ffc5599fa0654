"""Content source adapters."""

from .devto import DevToAdapter
from .hackernews import HackerNewsAdapter
from .qiita import QiitaAdapter
from .sources import SourceAdapter, build_adapters
from .zenn import ZennAdapter

__all__ = [
    'SourceAdapter',
    'build_adapters',
    'QiitaAdapter',
    'ZennAdapter',
    'HackerNewsAdapter',
    'DevToAdapter',
]
