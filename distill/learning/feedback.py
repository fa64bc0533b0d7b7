"""
Review feedback merge.

Folds reviewed predictions back into the training set before a retrain.
Authored examples are ground truth: an approved prediction that contradicts
an authored label for the same input is skipped, never applied.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Set, Tuple

from ..data.types import Example, ReviewItem
from ..errors import InsufficientDataError, ReviewConflictWarning, emit_warning

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    """Merged training set plus what the review items contributed."""
    examples: List[Example] = field(default_factory=list)
    original_count: int = 0
    added_from_review: int = 0
    skipped_conflict: int = 0
    skipped_duplicate: int = 0
    excluded: int = 0

    def __len__(self) -> int:
        return len(self.examples)

    def summary(self) -> str:
        return (
            f"Training set: {self.original_count} original + {self.added_from_review} from review "
            f"({self.skipped_conflict} conflicts skipped, {self.excluded} rejected items excluded)"
        )


def _pair(input_text: str, output_text: str) -> Tuple[str, str]:
    return input_text.strip(), output_text.strip()


class FeedbackMerger:
    """
    Builds the training set for a retrain.

    Per reviewed item:
      - approved: add (input, predicted) unless an authored example has the
        same input with a different label (conflict) or the pair already
        exists (duplicate)
      - rejected with correction: add (input, corrected) unless the pair
        already exists
      - rejected without correction: excluded

    Unreviewed items are ignored.
    """

    def merge(self, originals: Sequence[Example], review_items: Iterable[ReviewItem]) -> MergeResult:
        result = MergeResult(examples=list(originals), original_count=len(originals))

        known_pairs: Set[Tuple[str, str]] = {_pair(e.input, e.output) for e in originals}
        authored_labels = {}
        for example in originals:
            authored_labels.setdefault(example.input.strip(), set()).add(example.output.strip())

        for item in review_items:
            if not item.is_reviewed:
                continue

            if item.approved:
                self._merge_approved(item, result, known_pairs, authored_labels)
            elif item.has_correction:
                pair = _pair(item.input, item.corrected_output)
                if pair in known_pairs:
                    result.skipped_duplicate += 1
                    continue
                known_pairs.add(pair)
                result.examples.append(Example(id=f"corrected-{item.id}", input=item.input, output=item.corrected_output))
                result.added_from_review += 1
            else:
                result.excluded += 1

        logger.info(result.summary())
        return result

    def _merge_approved(self, item: ReviewItem, result: MergeResult, known_pairs, authored_labels) -> None:
        pair = _pair(item.input, item.predicted_output)
        labels = authored_labels.get(pair[0], set())

        if labels and pair[1] not in labels:
            result.skipped_conflict += 1
            emit_warning(
                f'Approved prediction "{pair[1]}" for review item {item.id} conflicts with the '
                f'authored label(s) {sorted(labels)}; keeping the authored example.',
                ReviewConflictWarning,
                logger,
            )
            return

        if pair in known_pairs:
            result.skipped_duplicate += 1
            return

        known_pairs.add(pair)
        result.examples.append(Example(id=f"review-{item.id}", input=item.input, output=item.predicted_output))
        result.added_from_review += 1


def merge_feedback(originals: Sequence[Example], review_items: Iterable[ReviewItem]) -> MergeResult:
    return FeedbackMerger().merge(originals, review_items)


def require_min_samples(count: int, minimum: int, task_type: str = "") -> None:
    """
    Raises:
        InsufficientDataError: If ``count`` is below ``minimum``
    """
    if count < minimum:
        label = f"{task_type} tasks" if task_type else "training"
        raise InsufficientDataError(
            count,
            minimum,
            f"Not enough training samples: have {count}, but {label} require at least {minimum}."
        )
