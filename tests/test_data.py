"""
Tests for the example store and the review store.
"""

import json

import pytest

from distill.data.reviews import ReviewStore
from distill.data.samples import (
    import_examples,
    load_examples,
    next_example_id,
    save_example,
    unique_categories,
)
from distill.data.types import Example, ReviewItem
from distill.errors import ConfigurationError


# ============================================================================
# EXAMPLE STORE
# ============================================================================

class TestExampleStore:

    def test_ids_start_at_001_and_increase(self, tmp_path):
        assert next_example_id(tmp_path / "missing") == "001"

        first = save_example(tmp_path, "in one", "out one")
        second = save_example(tmp_path, "in two", "out two")

        assert (first.id, second.id) == ("001", "002")
        assert next_example_id(tmp_path) == "003"

    def test_ids_continue_after_highest(self, tmp_path):
        save_example(tmp_path, "x", "y", example_id="041")
        assert save_example(tmp_path, "a", "b").id == "042"

    def test_existing_id_is_never_overwritten(self, tmp_path):
        save_example(tmp_path, "x", "y", example_id="001")
        with pytest.raises(FileExistsError):
            save_example(tmp_path, "other", "z", example_id="001")
        assert (tmp_path / "001.input.txt").read_text() == "x"

    def test_load_strips_and_sorts(self, tmp_path):
        (tmp_path / "002.input.md").write_text("  second input \n")
        (tmp_path / "002.output.md").write_text("label-b\n")
        (tmp_path / "001.input.txt").write_text("first input")
        (tmp_path / "001.output.txt").write_text(" label-a ")

        examples = load_examples(tmp_path)

        assert examples == [
            Example("001", "first input", "label-a"),
            Example("002", "second input", "label-b"),
        ]

    def test_orphan_input_is_skipped(self, tmp_path):
        (tmp_path / "001.input.txt").write_text("no output yet")
        save_example(tmp_path, "complete", "pair")

        assert [e.input for e in load_examples(tmp_path)] == ["complete"]

    def test_missing_directory_loads_nothing(self, tmp_path):
        assert load_examples(tmp_path / "nope") == []

    def test_import_assigns_fresh_ids(self, tmp_path):
        source = tmp_path / "incoming"
        source.mkdir()
        (source / "a.input.txt").write_text("hello")
        (source / "a.output.txt").write_text("greeting")
        (source / "b.input.json").write_text('{"x": 1}')
        (source / "b.output.json").write_text('{"y": 2}')
        (source / "c.input.txt").write_text("no pair")

        samples = tmp_path / "samples"
        save_example(samples, "existing", "label")
        imported = import_examples(source, samples)

        assert [e.id for e in imported] == ["002", "003"]
        assert (samples / "003.input.json").exists()
        assert len(load_examples(samples)) == 3

    def test_import_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            import_examples(tmp_path / "nope", tmp_path / "samples")

    def test_unique_categories_sorted(self):
        examples = [Example("1", "a", "z"), Example("2", "b", "a"), Example("3", "c", "z")]
        assert unique_categories(examples) == ["a", "z"]


# ============================================================================
# REVIEW STORE
# ============================================================================

@pytest.fixture
def store(tmp_path):
    return ReviewStore(tmp_path / "validation" / "results.json")


def test_review_item_json_uses_camel_case():
    item = ReviewItem("001", "in", "out", approved=False, corrected_output="fixed", reviewed_at="t")
    data = item.to_dict()

    assert data["predictedOutput"] == "out"
    assert data["correctedOutput"] == "fixed"
    assert data["reviewedAt"] == "t"
    assert ReviewItem.from_dict(data) == item


def test_unreviewed_item_omits_optional_keys():
    data = ReviewItem("001", "in", "out").to_dict()
    assert "reviewedAt" not in data
    assert "correctedOutput" not in data


def test_add_pending_creates_one_item_per_new_example(store):
    examples = [Example("001", "a", "x"), Example("002", "b", "y")]
    created = store.add_pending(examples, lambda text: text.upper())

    assert [(i.id, i.predicted_output) for i in created] == [("001", "A"), ("002", "B")]
    assert all(not i.is_reviewed for i in created)

    again = store.add_pending(examples + [Example("003", "c", "z")], lambda text: "?")
    assert [i.id for i in again] == ["003"]
    assert len(store.items) == 3


def test_record_review_persists_snapshot(store):
    store.add_pending([Example("001", "a", "x")], lambda text: "x")
    store.record_review("001", approved=False, corrected_output="y")

    raw = json.loads(store.results_path.read_text())
    assert raw["items"][0]["approved"] is False
    assert raw["items"][0]["correctedOutput"] == "y"
    assert raw["items"][0]["reviewedAt"]

    reloaded = ReviewStore(store.results_path)
    assert reloaded.get("001").has_correction
    assert reloaded.pending() == []


def test_record_review_unknown_id(store):
    with pytest.raises(KeyError):
        store.record_review("999", approved=True)


def test_review_stats(store):
    examples = [Example(str(i).zfill(3), f"t{i}", "x") for i in range(1, 5)]
    store.add_pending(examples, lambda text: "x")
    store.record_review("001", approved=True)
    store.record_review("002", approved=True)
    store.record_review("003", approved=False)

    stats = store.stats()
    assert stats["total"] == 4
    assert stats["reviewed"] == 3
    assert stats["approved"] == 2
    assert stats["rejected"] == 1
    assert stats["remaining"] == 1
    assert stats["approval_rate"] == pytest.approx(66.7)


def test_corrupted_results_raise(tmp_path):
    path = tmp_path / "results.json"
    path.write_text("{not json")
    with pytest.raises(ConfigurationError):
        ReviewStore(path)
