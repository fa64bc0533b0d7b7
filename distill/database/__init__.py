"""SQLite persistence for the embedding cache."""

from .models import Base, EmbeddingCacheEntry
from .connection import DatabaseManager

__all__ = ["Base", "EmbeddingCacheEntry", "DatabaseManager"]
