"""Configuration for the sentence embedding model."""

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class EmbeddingConfig:
    """Configuration for semantic embedding model."""
    model_name: str = "all-MiniLM-L6-v2"
    embedding_dim: int = 384
    normalize_l2: bool = True
    batch_size: int = 32

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EmbeddingConfig':
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        return cls(**known)
