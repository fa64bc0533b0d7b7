"""
Review store.

Holds the full list of ReviewItems as one JSON snapshot
(``validation/results.json``). Every mutation rewrites the whole snapshot.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from ..errors import ConfigurationError
from ..utils.fileio import atomic_write_json
from .types import Example, ReviewItem

logger = logging.getLogger(__name__)


class ReviewStore:
    """
    Loads, mutates and persists review items for one project.

    Usage:
        store = ReviewStore(paths.review_results_path)
        store.add_pending(examples, predict_fn)
        store.record_review("003", approved=False, corrected_output="spam")
    """

    def __init__(self, results_path: Union[str, Path]):
        self.results_path = Path(results_path)
        self.items: List[ReviewItem] = self._load()

    def _load(self) -> List[ReviewItem]:
        if not self.results_path.exists():
            return []

        try:
            raw = json.loads(self.results_path.read_text(encoding="utf-8"))
            return [ReviewItem.from_dict(item) for item in raw.get("items", [])]
        except (json.JSONDecodeError, KeyError, AttributeError) as e:
            raise ConfigurationError(f"Corrupted review results at {self.results_path}: {e}") from e

    def save(self) -> None:
        """Persist the full snapshot."""
        atomic_write_json(self.results_path, {"items": [item.to_dict() for item in self.items]})
        logger.debug(f"Saved {len(self.items)} review items to {self.results_path}")

    def get(self, item_id: str) -> Optional[ReviewItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add_pending(
        self,
        examples: Iterable[Example],
        predict_fn: Callable[[str], str]
    ) -> List[ReviewItem]:
        """
        Create one unreviewed item per example that has none yet.

        Args:
            examples: Examples to predict on
            predict_fn: Maps an input text to the model's predicted output

        Returns:
            The newly created items
        """
        existing = {item.id for item in self.items}
        created = []
        for example in examples:
            if example.id in existing:
                continue
            created.append(ReviewItem(
                id=example.id,
                input=example.input,
                predicted_output=predict_fn(example.input),
            ))

        if created:
            self.items.extend(created)
            self.save()
            logger.info(f"Queued {len(created)} predictions for review")

        return created

    def record_review(
        self,
        item_id: str,
        approved: bool,
        corrected_output: Optional[str] = None
    ) -> ReviewItem:
        """
        Apply a verdict to an item in place and persist the snapshot.

        Raises:
            KeyError: If no item has ``item_id``
        """
        item = self.get(item_id)
        if item is None:
            raise KeyError(f"Review item not found: {item_id}")

        item.approved = approved
        item.reviewed_at = datetime.now(timezone.utc).isoformat()
        if corrected_output is not None:
            item.corrected_output = corrected_output

        self.save()
        return item

    def pending(self) -> List[ReviewItem]:
        return [item for item in self.items if not item.is_reviewed]

    def reviewed(self) -> List[ReviewItem]:
        return [item for item in self.items if item.is_reviewed]

    def stats(self) -> Dict[str, float]:
        """Review progress counters."""
        reviewed = self.reviewed()
        approved = sum(1 for item in reviewed if item.approved)
        return {
            "total": len(self.items),
            "reviewed": len(reviewed),
            "approved": approved,
            "rejected": len(reviewed) - approved,
            "remaining": len(self.items) - len(reviewed),
            "approval_rate": round(approved / len(reviewed) * 100, 1) if reviewed else 0.0,
        }
