"""
Content-addressed embedding cache.

Texts are keyed by a sha256 content hash. Only cache misses are sent to the
provider, and all new vectors are committed in one transaction once the
whole batch has been embedded. Entries are never evicted or invalidated.

Not safe for concurrent writers on the same project database.
"""

import hashlib
import logging
from typing import Dict, List, Sequence

import numpy as np
from sqlalchemy import select, func
from tqdm import tqdm

from ..database.connection import DatabaseManager
from ..database.models import EmbeddingCacheEntry
from ..errors import ProviderUnavailableError

logger = logging.getLogger(__name__)

# keeps IN (...) lists under SQLite's bound-parameter limit
_LOOKUP_CHUNK = 500


def content_hash(text: str) -> str:
    """Stable 16-hex-char hash of a text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class EmbeddingCache:
    """
    Memoizes text -> vector lookups for one project.

    Usage:
        cache = EmbeddingCache(DatabaseManager(paths.embeddings_cache_path), provider)
        vectors = cache.embed(["first text", "second text"])
    """

    # texts per provider call
    encode_chunk = 256

    def __init__(self, db_manager: DatabaseManager, provider):
        """
        Args:
            db_manager: Database holding the cache table
            provider: Object with ``encode(list[str]) -> ndarray`` and ``embedding_dim``
        """
        self.db_manager = db_manager
        self.provider = provider

    @property
    def embedding_dim(self) -> int:
        return int(self.provider.embedding_dim)

    def _lookup(self, hashes: Sequence[str]) -> Dict[str, np.ndarray]:
        found: Dict[str, np.ndarray] = {}
        unique = list(dict.fromkeys(hashes))
        with self.db_manager.session_scope() as session:
            for start in range(0, len(unique), _LOOKUP_CHUNK):
                chunk = unique[start:start + _LOOKUP_CHUNK]
                rows = session.execute(
                    select(EmbeddingCacheEntry).where(EmbeddingCacheEntry.content_hash.in_(chunk))
                ).scalars()
                for row in rows:
                    found[row.content_hash] = row.to_array()
        return found

    def embed(self, texts: Sequence[str], progress: bool = False) -> np.ndarray:
        """
        Embed texts, reusing cached vectors.

        Misses are sent to the provider in chunks of ``encode_chunk`` texts;
        ``progress`` shows a tqdm bar over them.

        Returns:
            float32 array of shape (len(texts), embedding_dim), row i for texts[i]

        Raises:
            ProviderUnavailableError: If the provider fails; nothing is written
        """
        texts = list(texts)
        if not texts:
            return np.zeros((0, self.embedding_dim), dtype=np.float32)

        hashes = [content_hash(text) for text in texts]
        cached = self._lookup(hashes)

        # first occurrence of each uncached text, in original order
        miss_texts: Dict[str, str] = {}
        for text, key in zip(texts, hashes):
            if key not in cached and key not in miss_texts:
                miss_texts[key] = text

        logger.debug(f"Embedding cache: {len(texts) - len(miss_texts)} hits, {len(miss_texts)} misses")

        if miss_texts:
            pending = list(miss_texts.values())
            parts = []
            with tqdm(total=len(pending), desc="Embedding", unit="text", disable=not progress) as bar:
                for start in range(0, len(pending), self.encode_chunk):
                    chunk = pending[start:start + self.encode_chunk]
                    parts.append(self._encode(chunk))
                    bar.update(len(chunk))
            computed = np.concatenate(parts)

            model_name = getattr(self.provider, "model_name", "unknown")
            new_entries = []
            for key, vector in zip(miss_texts, computed):
                cached[key] = vector
                new_entries.append(EmbeddingCacheEntry.from_array(key, vector, model_name))

            with self.db_manager.session_scope() as session:
                session.add_all(new_entries)
            logger.info(f"Cached {len(new_entries)} new embeddings")

        return np.stack([cached[key] for key in hashes]).astype(np.float32)

    def _encode(self, texts: List[str]) -> np.ndarray:
        try:
            computed = np.asarray(self.provider.encode(texts), dtype=np.float32)
        except ProviderUnavailableError:
            raise
        except Exception as e:
            raise ProviderUnavailableError(f"Embedding provider failed: {e}") from e

        if computed.shape[0] != len(texts):
            raise ProviderUnavailableError(
                f"Embedding provider returned {computed.shape[0]} vectors for {len(texts)} texts"
            )
        return computed

    def embed_one(self, text: str) -> np.ndarray:
        return self.embed([text])[0]

    def stats(self) -> Dict[str, int]:
        with self.db_manager.session_scope() as session:
            count = session.execute(select(func.count()).select_from(EmbeddingCacheEntry)).scalar_one()
        return {"entries": int(count), "embedding_dim": self.embedding_dim}
