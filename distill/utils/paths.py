"""
Project directory layout.

A distill project is a directory holding a ``distill.yaml`` file plus the
sample, model, validation and internal cache areas below it.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "distill.yaml"


class ProjectPaths:
    """Resolves every on-disk location used by a project."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    @property
    def config_path(self) -> Path:
        return self.root / CONFIG_FILENAME

    @property
    def samples_dir(self) -> Path:
        return self.root / "samples"

    @property
    def model_dir(self) -> Path:
        return self.root / "model"

    @property
    def validation_dir(self) -> Path:
        return self.root / "validation"

    @property
    def review_results_path(self) -> Path:
        return self.validation_dir / "results.json"

    @property
    def internal_dir(self) -> Path:
        return self.root / ".distill"

    @property
    def embeddings_cache_path(self) -> Path:
        return self.internal_dir / "embeddings_cache.db"

    def ensure_layout(self) -> None:
        """Create all project directories."""
        for directory in (self.samples_dir, self.model_dir, self.validation_dir, self.internal_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"ProjectPaths({str(self.root)!r})"


def find_project_dir(start: Optional[Union[str, Path]] = None) -> Path:
    """
    Walk upward from ``start`` (default: cwd) to the nearest project root.

    Raises:
        ConfigurationError: If no ancestor contains a distill.yaml
    """
    current = Path(start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        if (directory / CONFIG_FILENAME).exists():
            logger.debug(f"Found project root at {directory}")
            return directory

    raise ConfigurationError(
        f"Not inside a distill project (no {CONFIG_FILENAME} found above {current}). "
        f'Run "distill init <directory>" to create one, or cd into an existing project.'
    )
