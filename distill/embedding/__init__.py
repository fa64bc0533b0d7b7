"""
Text embedding with a persistent per-project cache.

The provider wraps sentence-transformers; the cache stores vectors in the
project's SQLite database keyed by a hash of the text.
"""

from .types import EmbeddingConfig
from .provider import SentenceTransformerProvider
from .cache import EmbeddingCache, content_hash

__all__ = [
    "EmbeddingConfig",
    "SentenceTransformerProvider",
    "EmbeddingCache",
    "content_hash",
]
