"""
Pytest configuration and shared fixtures for distill tests.

Provides:
- Deterministic fake embedding provider (no model download)
- Clustered embedding generator for separable categories
- Temporary projects of each task type
"""

import hashlib
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pytest

from distill.data.samples import save_example
from distill.data.types import Example
from distill.database.connection import DatabaseManager


# ============================================================================
# EMBEDDING HELPERS
# ============================================================================

def _seed_for(text: str) -> int:
    return int.from_bytes(hashlib.sha256(text.encode("utf-8")).digest()[:4], "little")


def unit_vector(seed_text: str, dim: int = 384) -> np.ndarray:
    """Deterministic unit vector derived from a string."""
    rng = np.random.RandomState(_seed_for(seed_text))
    vector = rng.normal(size=dim).astype(np.float32)
    return vector / np.linalg.norm(vector)


class FakeEmbeddingProvider:
    """
    Stand-in for SentenceTransformerProvider.

    Texts containing one of ``topics`` land near that topic's centroid;
    anything else gets a hash-derived unit vector. Every call is recorded.
    """

    def __init__(self, dim: int = 384, topics: Optional[Sequence[str]] = None, noise: float = 0.1):
        self.embedding_dim = dim
        self.model_name = "fake-provider"
        self.topics = list(topics or [])
        self.noise = noise
        self.calls: List[List[str]] = []

    def _vector(self, text: str) -> np.ndarray:
        lowered = text.lower()
        for topic in self.topics:
            if topic in lowered:
                jitter = unit_vector(text, self.embedding_dim) * self.noise
                vector = unit_vector(f"topic:{topic}", self.embedding_dim) + jitter
                return vector / np.linalg.norm(vector)
        return unit_vector(text, self.embedding_dim)

    def encode(self, texts: List[str]) -> np.ndarray:
        self.calls.append(list(texts))
        return np.stack([self._vector(t) for t in texts]).astype(np.float32)


class FailingProvider(FakeEmbeddingProvider):
    def encode(self, texts: List[str]) -> np.ndarray:
        raise RuntimeError("model server unreachable")


def clustered_embeddings(
    labels: Sequence[str],
    dim: int = 384,
    noise: float = 0.1,
    seed: int = 0
) -> np.ndarray:
    """One unit-normalized row per label, tightly clustered per category."""
    rng = np.random.RandomState(seed)
    centroids: Dict[str, np.ndarray] = {}
    rows = []
    for label in labels:
        if label not in centroids:
            centroids[label] = unit_vector(f"centroid:{label}", dim)
        row = centroids[label] + rng.normal(scale=noise, size=dim).astype(np.float32) / np.sqrt(dim)
        rows.append(row / np.linalg.norm(row))
    return np.stack(rows).astype(np.float32)


# ============================================================================
# SAMPLE DATA
# ============================================================================

TICKET_TEXTS = {
    "billing": [
        "I was charged twice for my billing cycle",
        "Refund the duplicate billing charge please",
        "My invoice shows the wrong billing amount",
        "Why did billing take money from my card again",
        "Billing statement has an extra fee",
        "Cancel the billing renewal for next month",
    ],
    "account": [
        "I cannot log in to my account",
        "Reset the password on my account",
        "My account got locked after three attempts",
        "How do I delete my account permanently",
        "Change the email address on my account",
        "Account verification code never arrived",
    ],
}


def ticket_examples() -> List[Example]:
    examples = []
    for label, texts in TICKET_TEXTS.items():
        for text in texts:
            examples.append(Example(id=str(len(examples) + 1).zfill(3), input=text, output=label))
    return examples


def write_examples(samples_dir: Path, pairs: Sequence[tuple]) -> List[Example]:
    return [save_example(samples_dir, input_text, output_text) for input_text, output_text in pairs]


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def fake_provider():
    return FakeEmbeddingProvider(topics=list(TICKET_TEXTS))


@pytest.fixture
def memory_db():
    """Throwaway in-memory cache database."""
    manager = DatabaseManager(":memory:")
    yield manager
    manager.close()


@pytest.fixture
def examples():
    return ticket_examples()


@pytest.fixture
def classify_project(tmp_path, fake_provider):
    """A classify project holding the ticket examples."""
    from distill.pipeline import Project

    project = Project.init(tmp_path / "tickets", task_type="classify", provider=fake_provider)
    write_examples(project.paths.samples_dir, [(e.input, e.output) for e in ticket_examples()])
    return project


@pytest.fixture
def extract_project(tmp_path, fake_provider):
    """An extract project with enough examples to pass the retrieval floor."""
    from distill.pipeline import Project

    project = Project.init(tmp_path / "extract", task_type="extract", provider=fake_provider)
    pairs = [(e.input, f"team:{e.output}") for e in ticket_examples()]
    pairs += [(f"{e.input} (follow-up)", f"team:{e.output}") for e in ticket_examples()]
    write_examples(project.paths.samples_dir, pairs)
    return project
