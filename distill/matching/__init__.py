"""
Similarity search for open-ended outputs.

- similarity: cosine similarity and top-k ranking (numpy)
- retrieval: FAISS-backed nearest-neighbor model with leave-one-out evaluation
"""

from .similarity import cosine_similarity, find_top_k, safe_normalize
from .retrieval import (
    RetrievalMatch,
    RetrievalResult,
    RetrievalModel,
    build_retrieval_model,
    leave_one_out_accuracy,
)

__all__ = [
    "cosine_similarity",
    "find_top_k",
    "safe_normalize",
    "RetrievalMatch",
    "RetrievalResult",
    "RetrievalModel",
    "build_retrieval_model",
    "leave_one_out_accuracy",
]
