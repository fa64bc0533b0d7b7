"""
Sentence-transformers embedding provider.

Maps a batch of strings to one fixed-length, unit-normalized vector per
string. The model is loaded lazily on first use.
"""

import logging
from typing import List, Optional

import numpy as np

from ..errors import ProviderUnavailableError
from .types import EmbeddingConfig

logger = logging.getLogger(__name__)


class SentenceTransformerProvider:
    """
    Embedding provider backed by a sentence-transformers model.

    Any object exposing ``encode(texts) -> np.ndarray`` and ``embedding_dim``
    can stand in for this class (tests inject a deterministic fake).
    """

    def __init__(self, config: Optional[EmbeddingConfig] = None):
        self.config = config or EmbeddingConfig()
        self._model = None

    @property
    def model_name(self) -> str:
        return self.config.model_name

    @property
    def embedding_dim(self) -> int:
        return self.config.embedding_dim

    def _load_model(self):
        """Load sentence transformer model."""
        if self._model is not None:
            return self._model

        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ProviderUnavailableError(
                "sentence-transformers is required. Install with: pip install sentence-transformers"
            ) from e

        try:
            logger.info(f"Loading sentence transformer model: {self.config.model_name}")
            self._model = SentenceTransformer(self.config.model_name)
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise ProviderUnavailableError(
                f"Could not load embedding model '{self.config.model_name}': {e}. "
                "Check your network connection for the first download."
            ) from e

        dim = self._model.get_sentence_embedding_dimension()
        if dim != self.config.embedding_dim:
            logger.warning(f"Model dimension {dim} differs from configured {self.config.embedding_dim}")
            self.config.embedding_dim = dim

        logger.info(f"Model loaded successfully (dim={dim})")
        return self._model

    def encode(self, texts: List[str]) -> np.ndarray:
        """
        Encode texts to L2-normalized embeddings.

        Returns:
            float32 array of shape (len(texts), embedding_dim)
        """
        model = self._load_model()
        try:
            embeddings = model.encode(
                list(texts),
                batch_size=self.config.batch_size,
                convert_to_numpy=True,
                normalize_embeddings=self.config.normalize_l2,
                show_progress_bar=False,
            )
        except Exception as e:
            raise ProviderUnavailableError(f"Embedding provider failed: {e}") from e

        return np.asarray(embeddings, dtype=np.float32)
