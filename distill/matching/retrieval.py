"""
Nearest-neighbor retrieval model.

Stands in for a classifier when outputs are open-ended: a query is answered
with the output of the most similar stored example. Stored vectors are
L2-normalized (zero vectors stay zero) and served from a FAISS inner-product
index, so inner product equals cosine similarity and any zero vector scores 0.
"""

import json
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import faiss
import numpy as np

from .. import model_store
from ..data.types import Example
from ..errors import ConfigurationError, ModelNotTrainedError
from ..utils.fileio import atomic_path
from .similarity import safe_normalize

logger = logging.getLogger(__name__)

RETRIEVAL_FILENAME = "retrieval.npz"


@dataclass
class RetrievalMatch:
    """One stored example ranked against a query."""
    input: str
    output: str
    similarity: float

    def to_dict(self) -> Dict[str, Any]:
        return {"input": self.input, "output": self.output, "similarity": self.similarity}


@dataclass
class RetrievalResult:
    """Best output for a query plus the ranked neighbors behind it."""
    output: str
    confidence: float
    top_matches: List[RetrievalMatch] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.output,
            "confidence": self.confidence,
            "topMatches": [m.to_dict() for m in self.top_matches],
        }


class RetrievalModel:
    """
    Flat nearest-neighbor index over (embedding, example) pairs.

    ``embeddings[i]`` always belongs to ``examples[i]``.
    """

    def __init__(
        self,
        embeddings: Union[np.ndarray, Sequence[Sequence[float]]],
        examples: Sequence[Example],
        metadata: Optional[Dict[str, Any]] = None
    ):
        embeddings = np.asarray(embeddings, dtype=np.float32)
        if embeddings.ndim != 2 and len(examples) == 0:
            embeddings = embeddings.reshape(0, 0)
        if embeddings.shape[0] != len(examples):
            raise ValueError(
                f"embeddings and examples must have same length ({embeddings.shape[0]} != {len(examples)})"
            )

        self.embeddings = embeddings
        self.examples = list(examples)
        self.metadata = metadata or {}

        self.index = faiss.IndexFlatIP(int(embeddings.shape[1]) if embeddings.ndim == 2 else 0)
        if len(self.examples):
            self.index.add(safe_normalize(embeddings))

    def __len__(self) -> int:
        return len(self.examples)

    @property
    def dimension(self) -> int:
        return int(self.index.d)

    def search(self, query_embedding: Union[np.ndarray, Sequence[float]], k: int = 3) -> List[RetrievalMatch]:
        """
        Return the ``min(k, len(self))`` most similar examples, best first.
        """
        k = min(k, self.index.ntotal)
        if k <= 0:
            return []

        query = safe_normalize(np.asarray(query_embedding, dtype=np.float32))
        scores, indices = self.index.search(query, k)

        return [
            RetrievalMatch(
                input=self.examples[idx].input,
                output=self.examples[idx].output,
                similarity=float(score),
            )
            for score, idx in zip(scores[0], indices[0])
            if idx >= 0
        ]

    def predict(self, query_embedding: Union[np.ndarray, Sequence[float]], k: int = 3) -> RetrievalResult:
        """
        Answer with the best match's output; its similarity is the confidence.

        Raises:
            ModelNotTrainedError: If the model holds no examples
        """
        matches = self.search(query_embedding, k)
        if not matches:
            raise ModelNotTrainedError("Retrieval model holds no examples. Train it first.")

        best = matches[0]
        return RetrievalResult(output=best.output, confidence=best.similarity, top_matches=matches)

    def save(
        self,
        model_dir: Union[str, Path],
        task_label: str,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Persist embeddings, examples and metadata together in one archive.

        ``metadata.json`` is rewritten afterwards as a summary; loading only
        reads the archive.

        Returns:
            The metadata written
        """
        model_dir = Path(model_dir)
        model_dir.mkdir(parents=True, exist_ok=True)

        self.metadata = {
            **self.metadata,
            **(extra or {}),
            "type": "retrieval",
            "taskLabel": task_label,
            "trainedAt": model_store.utc_timestamp(),
            "numSamples": len(self.examples),
        }
        with atomic_path(model_dir / RETRIEVAL_FILENAME) as tmp:
            with open(tmp, "wb") as f:
                np.savez(
                    f,
                    embeddings=self.embeddings,
                    examples=np.array(json.dumps([e.to_dict() for e in self.examples])),
                    metadata=np.array(json.dumps(self.metadata)),
                )
        model_store.write_metadata(model_dir, self.metadata)
        model_store.remove_artifacts(model_dir, model_store.CLASSIFIER_FILES)

        logger.info(f"Saved retrieval model with {len(self.examples)} examples to {model_dir}")
        return self.metadata

    @classmethod
    def load(cls, model_dir: Union[str, Path]) -> 'RetrievalModel':
        """
        Raises:
            ModelNotTrainedError: If no retrieval model is stored in ``model_dir``
            ConfigurationError: If the archive is unreadable or inconsistent
        """
        model_dir = Path(model_dir)
        path = model_dir / RETRIEVAL_FILENAME
        if not path.exists():
            raise ModelNotTrainedError('No trained retrieval model found. Run "distill train" first.')

        try:
            with np.load(path, allow_pickle=False) as archive:
                embeddings = archive["embeddings"]
                examples = [Example.from_dict(item) for item in json.loads(str(archive["examples"]))]
                metadata = json.loads(str(archive["metadata"]))
            model = cls(embeddings, examples, metadata)
        except (OSError, ValueError, KeyError, TypeError, zipfile.BadZipFile) as e:
            raise ConfigurationError(f"Corrupted retrieval model at {path}: {e}") from e

        logger.debug(f"Loaded retrieval model with {len(examples)} examples from {model_dir}")
        return model


def build_retrieval_model(
    embeddings: Union[np.ndarray, Sequence[Sequence[float]]],
    examples: Sequence[Example],
    task_label: str,
    model_dir: Union[str, Path],
    extra: Optional[Dict[str, Any]] = None
) -> RetrievalModel:
    """Build a retrieval model from aligned embeddings and examples and persist it."""
    model = RetrievalModel(embeddings, examples)
    model.save(model_dir, task_label, extra)
    return model


def leave_one_out_accuracy(
    embeddings: Union[np.ndarray, Sequence[Sequence[float]]],
    examples: Sequence[Example]
) -> float:
    """
    Fraction of examples whose nearest other example has the same output.

    Outputs are compared after trimming whitespace. Cost is quadratic in the
    number of examples. Returns 0.0 for fewer than two examples.
    """
    n = len(examples)
    if n < 2:
        return 0.0

    embeddings = np.asarray(embeddings, dtype=np.float32)
    model = RetrievalModel(embeddings, examples)
    # k=2: the example itself is usually its own nearest neighbor
    _, indices = model.index.search(safe_normalize(embeddings), 2)

    correct = 0
    for i in range(n):
        neighbor = next(int(j) for j in indices[i] if j != i and j >= 0)
        if examples[neighbor].output.strip() == examples[i].output.strip():
            correct += 1

    return correct / n
