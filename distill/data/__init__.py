"""
Project data stores.

- samples: authored (input, output) example pairs on disk
- reviews: human verdicts on model predictions
"""

from .types import Example, ReviewItem
from .samples import load_examples, save_example, import_examples, next_example_id, unique_categories
from .reviews import ReviewStore

__all__ = [
    "Example",
    "ReviewItem",
    "load_examples",
    "save_example",
    "import_examples",
    "next_example_id",
    "unique_categories",
    "ReviewStore",
]
