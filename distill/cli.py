"""
Command-line interface.

Usage:
    distill init --type classify --name "Support tickets"
    distill add --input "Reset my password" --output account
    distill add
    distill import ./labelled
    distill train
    distill predict "I was charged twice"
    distill predict --file "inbox/*.txt"
    cat message.txt | distill predict
    distill review
    distill retrain
    distill export ./exported-model
    distill stats
"""

import argparse
import glob
import json
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from tqdm import tqdm

from . import __version__
from .data.samples import import_examples, save_example
from .errors import DistillError
from .pipeline import Project, TrainingReport
from .utils.config_manager import TASK_TYPES

logger = logging.getLogger(__name__)

RULE = "=" * 60


def _print_report(title: str, report: TrainingReport) -> None:
    print("\n" + RULE)
    print(title)
    print(RULE)
    if report.merge is not None:
        merge = report.merge
        print(f"Original examples:    {merge.original_count}")
        print(f"Added from review:    {merge.added_from_review}")
        print(f"Conflicts skipped:    {merge.skipped_conflict}")
        print(f"Duplicates skipped:   {merge.skipped_duplicate}")
        print(f"Rejected (excluded):  {merge.excluded}")
        print("-" * 60)
    print(f"Samples:              {report.num_samples}")
    if report.train_result is not None:
        result = report.train_result
        print(f"Categories:           {', '.join(result.categories)}")
        print(f"Epochs:               {result.epochs} (best {result.best_epoch})")
        print(f"Train accuracy:       {result.accuracy:.1%}")
        print(f"Validation accuracy:  {result.val_accuracy:.1%}")
    else:
        print(f"Leave-one-out acc.:   {report.accuracy:.1%}")
    if report.previous_accuracy is not None:
        print(f"Previous accuracy:    {report.previous_accuracy:.1%} ({report.accuracy_change:+.1%})")
    if report.archived_to is not None:
        print(f"Previous model:       {report.archived_to}")
    print(f"Time:                 {report.elapsed_seconds:.1f}s")
    print(RULE)


def cmd_init(args) -> int:
    project = Project.init(Path(args.directory), name=args.name, task_type=args.type, description=args.description)
    print(f"Initialized {project.config.task_type} project '{project.config.name}' in {project.paths.root}")
    print(f"Add examples to {project.paths.samples_dir} or run 'distill add'.")
    return 0


def _read_text(inline: Optional[str], file_path: Optional[str], what: str) -> str:
    if file_path:
        return Path(file_path).read_text(encoding="utf-8")
    if inline is not None:
        return inline
    raise DistillError(f"Provide the {what} with --{what} or --{what}-file")


def _ask(what: str) -> str:
    text = input(f"{what.capitalize()}: ").strip()
    if not text:
        raise DistillError(f"The {what} cannot be empty")
    return text


def cmd_add(args) -> int:
    project = Project.find()
    if not any((args.input, args.input_file, args.output, args.output_file)):
        # interactive mode
        input_text = _ask("input")
        output_text = _ask("output")
    else:
        input_text = _read_text(args.input, args.input_file, "input")
        output_text = _read_text(args.output, args.output_file, "output")
    example = save_example(project.paths.samples_dir, input_text, output_text, extension=args.extension)
    print(f"Added example {example.id} ({len(project.examples())} total)")
    return 0


def cmd_import(args) -> int:
    project = Project.find()
    imported = import_examples(args.source, project.paths.samples_dir)
    print(f"Imported {len(imported)} examples ({len(project.examples())} total)")
    return 0


def cmd_train(args) -> int:
    project = Project.find()
    project.show_progress = True
    report = project.train()
    _print_report("TRAINING SUMMARY", report)
    return 0


def cmd_retrain(args) -> int:
    project = Project.find()
    project.show_progress = True
    report = project.retrain()
    _print_report("RETRAINING SUMMARY", report)
    return 0


def _expand_files(patterns: Sequence[str]) -> List[Path]:
    """Resolve --file values, expanding glob patterns in sorted order."""
    paths: List[Path] = []
    for pattern in patterns:
        matches = sorted(glob.glob(pattern))
        if not matches:
            raise DistillError(f"No files match {pattern}")
        paths.extend(Path(match) for match in matches)
    return paths


def cmd_predict(args) -> int:
    project = Project.find()
    texts: List[str] = list(args.text)
    for path in _expand_files(args.file or []):
        texts.append(path.read_text(encoding="utf-8"))
    if not texts and not sys.stdin.isatty():
        piped = sys.stdin.read()
        if piped.strip():
            texts.append(piped)
    if not texts:
        raise DistillError("Nothing to predict: pass text, --file or pipe input on stdin")

    for text in texts:
        result = project.predict(text)
        if args.json:
            print(json.dumps({"input": text, **result.to_dict()}, ensure_ascii=False))
        else:
            output = result.to_dict()["output"]
            print(f"{output}\t({result.confidence:.1%})")
    return 0


def review_items(project: Project, prompt: Optional[Callable[[str], str]] = None) -> int:
    """
    Walk the pending review items in the terminal.

    ``prompt`` defaults to the built-in ``input``.

    Returns:
        Number of items reviewed in this session
    """
    prompt = prompt or input
    store = project.prepare_review()
    pending = store.pending()
    if not pending:
        print("Nothing to review.")
        return 0

    reviewed = 0
    with tqdm(total=len(pending), desc="Reviewing", unit="item") as pbar:
        for item in pending:
            tqdm.write("\n" + RULE)
            tqdm.write(f"Item {item.id}")
            tqdm.write(RULE)
            tqdm.write(f"  Input:      {item.input}")
            tqdm.write(f"  Prediction: {item.predicted_output}")
            tqdm.write("\n  ENTER/y = approve   n = reject   c = correct   s = skip   q = quit")

            choice = prompt("  Your choice: ").strip().lower()
            if choice == "q":
                break
            if choice == "s":
                pbar.update(1)
                continue

            if choice in ("", "y"):
                store.record_review(item.id, approved=True)
            elif choice == "n":
                store.record_review(item.id, approved=False)
            elif choice == "c":
                correction = prompt("  Correct output: ").strip()
                store.record_review(item.id, approved=False, corrected_output=correction or None)
            else:
                tqdm.write(f"  X Invalid choice: {choice}, skipping")
                pbar.update(1)
                continue

            reviewed += 1
            pbar.update(1)

    stats = store.stats()
    print(f"\nReviewed {reviewed} items this session; "
          f"{stats['reviewed']}/{stats['total']} overall, approval rate {stats['approval_rate']}%")
    if stats['reviewed']:
        print("Run 'distill retrain' to fold the reviewed items into the model.")
    return reviewed


def cmd_review(args) -> int:
    review_items(Project.find())
    return 0


def cmd_export(args) -> int:
    project = Project.find()
    copied = project.export(args.output)
    for path in copied:
        print(f"  {path}")
    print(f"Exported {len(copied)} files to {args.output}")
    return 0


def cmd_stats(args) -> int:
    stats = Project.find().stats()
    if args.json:
        print(json.dumps(stats, indent=2))
        return 0

    print("\n" + RULE)
    print(f"PROJECT: {stats['name']} ({stats['task_type']})")
    print(RULE)
    if stats['description']:
        print(f"Description:          {stats['description']}")
    print(f"Examples:             {stats['samples']}")

    model = stats['model']
    if model is None:
        print("Model:                not trained")
    else:
        print(f"Trained at:           {model['trained_at']}")
        if model['accuracy'] is not None:
            print(f"Accuracy:             {model['accuracy']:.1%}")
        if model['categories']:
            print(f"Categories:           {', '.join(model['categories'])}")
        print(f"Model size:           {model['size']}")

    reviews = stats['reviews']
    print(f"Reviewed:             {reviews['reviewed']}/{reviews['total']} "
          f"(approval rate {reviews['approval_rate']}%)")
    print(RULE)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="distill",
        description="Train small task-specific models from examples and human review",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("Usage:", 1)[1],
    )
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    subparsers = parser.add_subparsers(dest='command', required=True)

    init = subparsers.add_parser('init', help='Create a new project')
    init.add_argument('directory', nargs='?', default='.', help='Project directory (default: current)')
    init.add_argument('--type', '-t', choices=TASK_TYPES, default='classify', help='Task type')
    init.add_argument('--name', '-n', help='Project name (default: directory name)')
    init.add_argument('--description', '-d', default='', help='Short description')
    init.set_defaults(func=cmd_init)

    add = subparsers.add_parser('add', help='Add one example pair')
    add.add_argument('--input', '-i', help='Input text')
    add.add_argument('--output', '-o', help='Expected output text')
    add.add_argument('--input-file', help='Read the input from a file')
    add.add_argument('--output-file', help='Read the expected output from a file')
    add.add_argument('--extension', default='txt', help='File extension for the stored pair')
    add.set_defaults(func=cmd_add)

    imp = subparsers.add_parser('import', help='Import <name>.input.<ext>/<name>.output.<ext> pairs')
    imp.add_argument('source', help='Directory containing example pairs')
    imp.set_defaults(func=cmd_import)

    train = subparsers.add_parser('train', help='Train on the stored examples')
    train.set_defaults(func=cmd_train)

    predict = subparsers.add_parser('predict', help='Run the trained model')
    predict.add_argument('text', nargs='*', help='Input text(s)')
    predict.add_argument('--file', '-f', action='append',
                         help='Read an input from a file; glob patterns and repeats allowed')
    predict.add_argument('--json', action='store_true', help='Print full results as JSON lines')
    predict.set_defaults(func=cmd_predict)

    review = subparsers.add_parser('review', help='Approve or correct model predictions')
    review.set_defaults(func=cmd_review)

    retrain = subparsers.add_parser('retrain', help='Retrain with reviewed predictions merged in')
    retrain.set_defaults(func=cmd_retrain)

    export = subparsers.add_parser('export', help='Copy the current model files')
    export.add_argument('output', help='Destination directory')
    export.set_defaults(func=cmd_export)

    stats = subparsers.add_parser('stats', help='Show project and model statistics')
    stats.add_argument('--json', action='store_true', help='Print as JSON')
    stats.set_defaults(func=cmd_stats)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    try:
        return args.func(args)
    except DistillError as e:
        logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, FileExistsError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except EOFError:
        print("\nError: input ended unexpectedly.", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
