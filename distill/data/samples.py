"""
File-backed example store.

Each example is a pair of files in ``samples/``: ``<id>.input.<ext>`` and
``<id>.output.<ext>``, where ``<id>`` is a zero-padded integer.
"""

import logging
import re
import shutil
from pathlib import Path
from typing import List, Optional, Union

from .types import Example

logger = logging.getLogger(__name__)

ID_WIDTH = 3
_INPUT_MARKER = ".input."
_OUTPUT_MARKER = ".output."
_NUMERIC_ID = re.compile(r"^\d+$")


def load_examples(samples_dir: Union[str, Path]) -> List[Example]:
    """
    Load all complete example pairs, sorted by input filename.

    Inputs without a matching output file are skipped.
    """
    samples_dir = Path(samples_dir)
    if not samples_dir.exists():
        return []

    names = sorted(p.name for p in samples_dir.iterdir() if p.is_file())
    outputs = {name.split(_OUTPUT_MARKER)[0]: name for name in names if _OUTPUT_MARKER in name}

    examples = []
    for name in names:
        if _INPUT_MARKER not in name:
            continue
        example_id = name.split(_INPUT_MARKER)[0]
        output_name = outputs.get(example_id)
        if output_name is None:
            logger.debug(f"Skipping orphaned input file {name}")
            continue

        examples.append(Example(
            id=example_id,
            input=(samples_dir / name).read_text(encoding="utf-8").strip(),
            output=(samples_dir / output_name).read_text(encoding="utf-8").strip(),
        ))

    return examples


def next_example_id(samples_dir: Union[str, Path]) -> str:
    """Return the id after the highest numeric id present ("001" when empty)."""
    samples_dir = Path(samples_dir)
    if not samples_dir.exists():
        return "1".zfill(ID_WIDTH)

    ids = [
        int(p.name.split(_INPUT_MARKER)[0])
        for p in samples_dir.iterdir()
        if _INPUT_MARKER in p.name and _NUMERIC_ID.match(p.name.split(_INPUT_MARKER)[0])
    ]
    next_id = max(ids) + 1 if ids else 1
    return str(next_id).zfill(ID_WIDTH)


def save_example(
    samples_dir: Union[str, Path],
    input_text: str,
    output_text: str,
    example_id: Optional[str] = None,
    extension: str = "txt"
) -> Example:
    """
    Write a new example pair and return it.

    Raises:
        FileExistsError: If an example with ``example_id`` already exists
    """
    samples_dir = Path(samples_dir)
    samples_dir.mkdir(parents=True, exist_ok=True)

    example_id = example_id or next_example_id(samples_dir)
    if any(samples_dir.glob(f"{example_id}{_INPUT_MARKER}*")):
        raise FileExistsError(f"Example {example_id} already exists in {samples_dir}")

    (samples_dir / f"{example_id}.input.{extension}").write_text(input_text, encoding="utf-8")
    (samples_dir / f"{example_id}.output.{extension}").write_text(output_text, encoding="utf-8")
    logger.debug(f"Saved example {example_id}")

    return Example(id=example_id, input=input_text.strip(), output=output_text.strip())


def import_examples(source_dir: Union[str, Path], samples_dir: Union[str, Path]) -> List[Example]:
    """
    Copy example pairs named ``<name>.input.<ext>`` / ``<name>.output.<ext>``
    from ``source_dir`` into the store under freshly assigned ids.
    """
    source_dir = Path(source_dir)
    if not source_dir.is_dir():
        raise FileNotFoundError(f"Import directory not found: {source_dir}")

    samples_dir = Path(samples_dir)
    samples_dir.mkdir(parents=True, exist_ok=True)

    imported = []
    for input_path in sorted(source_dir.glob(f"*{_INPUT_MARKER}*")):
        stem = input_path.name.split(_INPUT_MARKER)[0]
        candidates = sorted(source_dir.glob(f"{stem}{_OUTPUT_MARKER}*"))
        if not candidates:
            logger.warning(f"No output file for {input_path.name}, skipping")
            continue

        example_id = next_example_id(samples_dir)
        in_ext = input_path.name.split(_INPUT_MARKER, 1)[1]
        out_ext = candidates[0].name.split(_OUTPUT_MARKER, 1)[1]
        shutil.copyfile(input_path, samples_dir / f"{example_id}.input.{in_ext}")
        shutil.copyfile(candidates[0], samples_dir / f"{example_id}.output.{out_ext}")

        imported.append(Example(
            id=example_id,
            input=input_path.read_text(encoding="utf-8").strip(),
            output=candidates[0].read_text(encoding="utf-8").strip(),
        ))

    logger.info(f"Imported {len(imported)} examples from {source_dir}")
    return imported


def unique_categories(examples: List[Example]) -> List[str]:
    """Sorted distinct output labels."""
    return sorted({example.output for example in examples})
