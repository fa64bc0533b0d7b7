"""
Tests for the command-line interface.
"""

import io
import json

import pytest

pytest.importorskip("faiss")

from distill import cli
from distill.data.samples import load_examples
from distill.data.types import Example
from distill.matching.retrieval import RetrievalResult
from distill.pipeline import Project


@pytest.fixture
def project_dir(tmp_path, monkeypatch):
    directory = tmp_path / "proj"
    assert cli.main(["init", str(directory), "--type", "extract", "--name", "demo"]) == 0
    monkeypatch.chdir(directory)
    return directory


def test_init_and_stats(project_dir, capsys):
    assert cli.main(["stats", "--json"]) == 0
    stats = json.loads(capsys.readouterr().out)

    assert stats["name"] == "demo"
    assert stats["task_type"] == "extract"
    assert stats["model"] is None


def test_add_inline_and_from_files(project_dir, tmp_path):
    assert cli.main(["add", "--input", "hello there", "--output", "greeting"]) == 0

    (tmp_path / "in.txt").write_text("from a file")
    (tmp_path / "out.txt").write_text("file label")
    assert cli.main(["add", "--input-file", str(tmp_path / "in.txt"), "--output-file", str(tmp_path / "out.txt")]) == 0

    examples = load_examples(project_dir / "samples")
    assert [(e.id, e.output) for e in examples] == [("001", "greeting"), ("002", "file label")]


def test_add_without_output_fails(project_dir, capsys):
    assert cli.main(["add", "--input", "orphan"]) == 1
    assert "--output" in capsys.readouterr().err


def test_add_prompts_without_arguments(project_dir, monkeypatch):
    answers = iter(["typed at the prompt", "typed label"])
    monkeypatch.setattr("builtins.input", lambda _: next(answers))

    assert cli.main(["add"]) == 0
    examples = load_examples(project_dir / "samples")
    assert [(e.input, e.output) for e in examples] == [("typed at the prompt", "typed label")]


def test_add_prompt_rejects_empty_answer(project_dir, monkeypatch, capsys):
    monkeypatch.setattr("builtins.input", lambda _: "   ")
    assert cli.main(["add"]) == 1
    assert "cannot be empty" in capsys.readouterr().err
    assert load_examples(project_dir / "samples") == []


def test_import(project_dir, tmp_path):
    source = tmp_path / "incoming"
    source.mkdir()
    for name in ("x", "y"):
        (source / f"{name}.input.txt").write_text(f"input {name}")
        (source / f"{name}.output.txt").write_text(f"output {name}")

    assert cli.main(["import", str(source)]) == 0
    assert len(load_examples(project_dir / "samples")) == 2


def test_train_with_too_few_samples_exits_1(project_dir, capsys):
    cli.main(["add", "--input", "only one", "--output", "x"])
    assert cli.main(["train"]) == 1
    assert "at least 20" in capsys.readouterr().err


def test_predict_without_model_exits_1(project_dir, monkeypatch, fake_provider):
    original_find = Project.find
    monkeypatch.setattr(Project, "find", classmethod(lambda cls, start=None, provider=None: original_find(start, provider=fake_provider)))
    assert cli.main(["predict", "some text"]) == 1


def test_outside_project_exits_1(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["stats"]) == 1
    assert "Not inside a distill project" in capsys.readouterr().err


def test_export_without_model_exits_1(project_dir, tmp_path):
    assert cli.main(["export", str(tmp_path / "out")]) == 1


class TestReviewLoop:

    class StubProject:
        """Minimal project stand-in whose predictions are fixed."""

        def __init__(self, store):
            self._store = store

        def prepare_review(self):
            return self._store

    @pytest.fixture
    def store(self, tmp_path):
        from distill.data.reviews import ReviewStore

        store = ReviewStore(tmp_path / "results.json")
        examples = [Example("001", "a", "x"), Example("002", "b", "y"), Example("003", "c", "z"), Example("004", "d", "w")]
        store.add_pending(examples, lambda text: "x")
        return store

    def test_answers_applied_in_order(self, store):
        answers = iter(["y", "n", "c", "corrected", "s"])
        reviewed = cli.review_items(self.StubProject(store), prompt=lambda _: next(answers))

        assert reviewed == 3
        assert store.get("001").approved is True
        assert store.get("002").approved is False
        assert store.get("002").corrected_output is None
        assert store.get("003").corrected_output == "corrected"
        assert not store.get("004").is_reviewed

    def test_quit_stops_early(self, store):
        answers = iter(["", "q"])
        reviewed = cli.review_items(self.StubProject(store), prompt=lambda _: next(answers))

        assert reviewed == 1
        assert len(store.pending()) == 3

    def test_nothing_pending(self, tmp_path, capsys):
        from distill.data.reviews import ReviewStore

        reviewed = cli.review_items(self.StubProject(ReviewStore(tmp_path / "empty.json")), prompt=lambda _: "y")
        assert reviewed == 0
        assert "Nothing to review" in capsys.readouterr().out

    def test_closed_stdin_exits_1(self, store, monkeypatch, capsys):
        stub = self.StubProject(store)
        monkeypatch.setattr(Project, "find", classmethod(lambda cls, *args, **kwargs: stub))

        def closed(_):
            raise EOFError

        monkeypatch.setattr("builtins.input", closed)
        assert cli.main(["review"]) == 1
        assert "input ended" in capsys.readouterr().err
        assert len(store.pending()) == 4


class TestPredictInputs:

    class EchoProject:
        """Answers every input with its upper-cased text."""

        def predict(self, text):
            return RetrievalResult(output=text.strip().upper(), confidence=0.5)

    @pytest.fixture(autouse=True)
    def echo_project(self, monkeypatch):
        project = self.EchoProject()
        monkeypatch.setattr(Project, "find", classmethod(lambda cls, *args, **kwargs: project))
        return project

    def test_repeated_files_and_glob_patterns(self, tmp_path, capsys):
        (tmp_path / "a.txt").write_text("alpha")
        (tmp_path / "b.txt").write_text("beta")
        (tmp_path / "c.md").write_text("gamma")

        assert cli.main(["predict", "--file", str(tmp_path / "*.txt"), "--file", str(tmp_path / "c.md")]) == 0
        outputs = [line.split("\t")[0] for line in capsys.readouterr().out.splitlines()]
        assert outputs == ["ALPHA", "BETA", "GAMMA"]

    def test_unmatched_pattern_exits_1(self, tmp_path, capsys):
        assert cli.main(["predict", "--file", str(tmp_path / "*.none")]) == 1
        assert "No files match" in capsys.readouterr().err

    def test_reads_piped_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("piped text\n"))

        assert cli.main(["predict", "--json"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["input"] == "piped text\n"
        assert result["output"] == "PIPED TEXT"

    def test_empty_stdin_exits_1(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(""))
        assert cli.main(["predict"]) == 1
