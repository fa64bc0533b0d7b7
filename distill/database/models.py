"""
SQLAlchemy ORM models for the per-project embedding cache.

Vectors are stored as raw float32 bytes keyed by a hash of the embedded
text, so the same text always maps to the same stored vector.
"""

from datetime import datetime

import numpy as np
from sqlalchemy import String, Integer, DateTime, LargeBinary
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class EmbeddingCacheEntry(Base):
    """One cached text embedding."""
    __tablename__ = "embedding_cache"

    # sha256 of the text, first 16 hex chars
    content_hash: Mapped[str] = mapped_column(String(64), primary_key=True)

    vector: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    dim: Mapped[int] = mapped_column(Integer, nullable=False)
    model_name: Mapped[str] = mapped_column(String(200), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def to_array(self) -> np.ndarray:
        return np.frombuffer(self.vector, dtype=np.float32).copy()

    @classmethod
    def from_array(cls, content_hash: str, vector: np.ndarray, model_name: str) -> 'EmbeddingCacheEntry':
        vector = np.asarray(vector, dtype=np.float32)
        return cls(
            content_hash=content_hash,
            vector=vector.tobytes(),
            dim=int(vector.shape[0]),
            model_name=model_name,
        )

    def __repr__(self) -> str:
        return f"<EmbeddingCacheEntry(hash='{self.content_hash}', dim={self.dim})>"
