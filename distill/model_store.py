"""
Model store: the ``model/`` directory of a project.

Holds one model artifact, either ``classifier.pt`` or ``retrieval.npz``,
plus ``metadata.json``. The artifact carries its own copy of the metadata
and is the only file prediction reads. ``metadata.json`` is a summary
written after it for stats, export and archiving.
"""

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ConfigurationError, ModelNotTrainedError
from .utils.fileio import atomic_write_json

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"
ARCHIVE_DIRNAME = "archive"

CLASSIFIER_FILES = ("classifier.pt",)
RETRIEVAL_FILES = ("retrieval.npz",)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def metadata_path(model_dir: Union[str, Path]) -> Path:
    return Path(model_dir) / METADATA_FILENAME


def has_model(model_dir: Union[str, Path]) -> bool:
    return metadata_path(model_dir).exists()


def read_metadata(model_dir: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """Return the stored metadata, or None if no model is present."""
    path = metadata_path(model_dir)
    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Corrupted model metadata at {path}: {e}") from e


def write_metadata(model_dir: Union[str, Path], metadata: Dict[str, Any]) -> None:
    atomic_write_json(metadata_path(model_dir), metadata)


def remove_artifacts(model_dir: Union[str, Path], names: Iterable[str]) -> None:
    """Delete leftover artifacts of a different model kind."""
    for name in names:
        path = Path(model_dir) / name
        if path.exists():
            path.unlink()
            logger.debug(f"Removed stale model artifact {path}")


def _model_files(model_dir: Path) -> List[Path]:
    return [p for p in sorted(model_dir.iterdir()) if p.is_file()]


def archive_model(model_dir: Union[str, Path]) -> Optional[Path]:
    """
    Copy the current model files into ``archive/<timestamp>/``.

    Best-effort: failures are logged and None is returned so that training
    can proceed.
    """
    model_dir = Path(model_dir)
    if not has_model(model_dir):
        return None

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
    archive_dir = model_dir / ARCHIVE_DIRNAME / stamp
    try:
        archive_dir.mkdir(parents=True, exist_ok=True)
        for path in _model_files(model_dir):
            shutil.copy2(path, archive_dir / path.name)
    except OSError as e:
        logger.warning(f"Could not archive previous model: {e}")
        return None

    logger.info(f"Previous model archived to {archive_dir}")
    return archive_dir


def export_model(model_dir: Union[str, Path], output_dir: Union[str, Path]) -> List[Path]:
    """
    Copy the current model files (not archives) to ``output_dir``.

    Raises:
        ModelNotTrainedError: If no model is stored
    """
    model_dir = Path(model_dir)
    if not has_model(model_dir):
        raise ModelNotTrainedError('No trained model found. Run "distill train" first.')

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    copied = []
    for path in _model_files(model_dir):
        target = output_dir / path.name
        shutil.copy2(path, target)
        copied.append(target)

    logger.info(f"Exported {len(copied)} model files to {output_dir}")
    return copied


def directory_size(path: Union[str, Path]) -> int:
    path = Path(path)
    if not path.exists():
        return 0
    return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())


def format_bytes(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
