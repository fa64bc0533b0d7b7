"""
Deterministic stratified train/validation split.

The shuffle seed is derived from the ordered label sequence alone, so the
same labels always produce the same split regardless of the embeddings.
"""

import hashlib
import logging
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, MutableSequence, Sequence

from ..errors import LowSampleCountWarning, emit_warning

logger = logging.getLogger(__name__)

SMALL_DATASET_SIZE = 30
SMALL_VALIDATION_FRACTION = 0.1
VALIDATION_FRACTION = 0.2


@dataclass
class SplitResult:
    """Train and validation index sets over the original example order."""
    train_indices: List[int] = field(default_factory=list)
    val_indices: List[int] = field(default_factory=list)
    validation_fraction: float = VALIDATION_FRACTION

    @property
    def num_train(self) -> int:
        return len(self.train_indices)

    @property
    def num_val(self) -> int:
        return len(self.val_indices)


def label_seed(labels: Sequence[str]) -> int:
    """First 4 bytes (little-endian) of the md5 of the '|'-joined labels."""
    digest = hashlib.md5("|".join(labels).encode("utf-8")).digest()
    return int.from_bytes(digest[:4], "little")


def seeded_shuffle(items: MutableSequence, rng: random.Random) -> None:
    """In-place Fisher-Yates shuffle driven by ``rng.random()``."""
    for i in range(len(items) - 1, 0, -1):
        j = int(rng.random() * (i + 1))
        items[i], items[j] = items[j], items[i]


def validation_fraction_for(total: int) -> float:
    return SMALL_VALIDATION_FRACTION if total < SMALL_DATASET_SIZE else VALIDATION_FRACTION


def stratified_split(labels: Sequence[str], low_sample_count: int = 3) -> SplitResult:
    """
    Split example indices into train and validation sets per class.

    Each class contributes ``max(1, floor(size * fraction))`` validation
    examples, capped at ``size - 1`` so that every class keeps at least one
    training example. A single-example class therefore has no validation
    coverage.

    Args:
        labels: Label of each example, in example order
        low_sample_count: Classes smaller than this trigger LowSampleCountWarning

    Returns:
        SplitResult with disjoint index lists covering all examples
    """
    labels = list(labels)
    fraction = validation_fraction_for(len(labels))
    rng = random.Random(label_seed(labels))

    groups: Dict[str, List[int]] = {}
    for index, label in enumerate(labels):
        groups.setdefault(label, []).append(index)

    for label, count in Counter(labels).items():
        if count < low_sample_count:
            emit_warning(
                f'Category "{label}" has only {count} example(s). '
                f'Consider adding at least {low_sample_count} examples per category.',
                LowSampleCountWarning,
                logger,
            )

    result = SplitResult(validation_fraction=fraction)
    for indices in groups.values():
        seeded_shuffle(indices, rng)
        num_val = min(max(1, math.floor(len(indices) * fraction)), len(indices) - 1)
        result.val_indices.extend(indices[:num_val])
        result.train_indices.extend(indices[num_val:])

    logger.debug(
        f"Stratified split: {result.num_train} train, {result.num_val} validation "
        f"(fraction={fraction}, classes={len(groups)})"
    )
    return result
