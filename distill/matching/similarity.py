"""
Cosine similarity helpers.

These are the plain numpy form of the scoring that ``RetrievalModel`` serves
from FAISS: rows are normalized with ``safe_normalize`` and ranked by inner
product, so ``find_top_k`` returns the same neighbors and scores as
``RetrievalModel.search`` and is used to check it.
"""

from typing import List, Sequence, Tuple, Union

import numpy as np

ArrayLike = Union[Sequence[float], np.ndarray]


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    """
    dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0
    return float(np.dot(a, b) / denominator)


def safe_normalize(vectors: np.ndarray) -> np.ndarray:
    """L2-normalize rows; zero rows stay zero."""
    vectors = np.asarray(vectors, dtype=np.float32)
    if vectors.ndim == 1:
        vectors = vectors.reshape(1, -1)
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    return np.divide(vectors, norms, out=np.zeros_like(vectors), where=norms > 0)


def find_top_k(
    query: ArrayLike,
    embeddings: Union[Sequence[ArrayLike], np.ndarray],
    k: int
) -> List[Tuple[int, float]]:
    """
    Rank ``embeddings`` by cosine similarity to ``query``.

    Returns:
        min(k, len(embeddings)) (index, similarity) pairs, most similar first
    """
    if len(embeddings) == 0 or k <= 0:
        return []

    matrix = safe_normalize(np.asarray(embeddings, dtype=np.float32))
    scores = matrix @ safe_normalize(np.asarray(query, dtype=np.float32))[0]

    # stable sort keeps lower indices first among ties
    order = np.argsort(-scores, kind="stable")[:k]
    return [(int(i), float(scores[i])) for i in order]
