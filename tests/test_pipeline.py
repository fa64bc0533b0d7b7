"""
End-to-end tests of project training, prediction, review and retraining.

Embeddings come from the fake provider in conftest, so no model download
is needed.
"""

import json

import pytest

pytest.importorskip("faiss")

from distill.data.samples import save_example
from distill.data.types import ReviewItem
from distill.errors import ConfigurationError, InsufficientDataError, ModelNotTrainedError
from distill.learning.classifier import PredictionResult
from distill.matching.retrieval import RetrievalResult
from distill.pipeline import Project


def _fast_training(project):
    project.config.config["training"].update({"max_epochs": 40, "batch_size": 4, "learning_rate": 0.01})
    project.config.save_config()


def test_init_creates_layout(tmp_path):
    project = Project.init(tmp_path / "new", name="demo", task_type="transform")

    assert project.config.name == "demo"
    assert project.config.task_type == "transform"
    assert project.paths.samples_dir.is_dir()
    assert project.paths.internal_dir.is_dir()


def test_init_twice_refused(tmp_path):
    Project.init(tmp_path)
    with pytest.raises(ConfigurationError):
        Project.init(tmp_path)


def test_open_missing_project(tmp_path):
    with pytest.raises(ConfigurationError):
        Project(tmp_path)


def test_train_below_minimum_samples(tmp_path, fake_provider):
    project = Project.init(tmp_path, task_type="classify", provider=fake_provider)
    for i in range(9):
        save_example(project.paths.samples_dir, f"text {i}", "a" if i % 2 else "b")

    with pytest.raises(InsufficientDataError) as exc_info:
        project.train()

    assert exc_info.value.current == 9
    assert exc_info.value.required == 10
    assert fake_provider.calls == []
    assert project.model_metadata() is None


def test_predict_before_training(extract_project):
    with pytest.raises(ModelNotTrainedError):
        extract_project.predict("anything")


# ============================================================================
# RETRIEVAL PROJECTS
# ============================================================================

class TestRetrievalProject:

    def test_train_records_leave_one_out_accuracy(self, extract_project):
        report = extract_project.train()

        assert report.task_type == "extract"
        assert report.num_samples == 24
        assert report.train_result is None
        assert report.accuracy == pytest.approx(1.0)

        metadata = extract_project.model_metadata()
        assert metadata["type"] == "retrieval"
        assert metadata["taskLabel"] == "extract"
        assert metadata["accuracy"] == pytest.approx(1.0)

    def test_predict_returns_nearest_output(self, extract_project):
        extract_project.train()
        result = extract_project.predict("please fix my billing problem")

        assert isinstance(result, RetrievalResult)
        assert result.output == "team:billing"
        assert len(result.top_matches) == 3
        assert extract_project.predict_output("account is locked") == "team:account"

    def test_retrain_archives_previous_model(self, extract_project):
        extract_project.train()
        report = extract_project.retrain()

        assert report.archived_to is not None
        assert (report.archived_to / "metadata.json").exists()
        assert report.previous_accuracy == pytest.approx(1.0)
        assert report.merge.original_count == 24


# ============================================================================
# CLASSIFY PROJECTS
# ============================================================================

class TestClassifyProject:

    @pytest.fixture(autouse=True)
    def _needs_torch(self):
        pytest.importorskip("torch")

    def test_train_and_predict(self, classify_project):
        _fast_training(classify_project)
        report = classify_project.train()

        assert report.train_result.categories == ["account", "billing"]
        assert report.num_samples == 12

        result = classify_project.predict("there is a billing error on my statement")
        assert isinstance(result, PredictionResult)
        assert result.category == "billing"

    def test_retrain_twice_is_stable(self, classify_project):
        _fast_training(classify_project)
        classify_project.train()

        first = classify_project.retrain()
        second = classify_project.retrain()

        assert first.num_samples == second.num_samples == 12
        assert second.metadata["trainedAt"] >= first.metadata["trainedAt"]
        assert second.metadata["numSamples"] == 12

    def test_approved_reviews_of_authored_inputs_add_nothing(self, classify_project):
        _fast_training(classify_project)
        classify_project.train()

        store = classify_project.prepare_review()
        assert len(store.pending()) == 12

        for item in store.pending():
            store.record_review(item.id, approved=True)

        save_example(classify_project.paths.samples_dir, "billing charged me in the wrong currency", "billing")
        report = classify_project.retrain()

        # approved items repeat authored pairs or conflict with them; none are new
        assert report.merge.added_from_review == 0
        assert report.num_samples == 13

    def test_corrections_are_merged(self, classify_project):
        _fast_training(classify_project)
        classify_project.train()

        store = classify_project.reviews()
        store.items.append(ReviewItem("900", "my account was billed twice", "account"))
        store.save()
        store.record_review("900", approved=False, corrected_output="billing")

        report = classify_project.retrain()
        assert report.merge.added_from_review == 1
        assert report.num_samples == 13

    def test_stats(self, classify_project):
        _fast_training(classify_project)
        classify_project.train()
        stats = classify_project.stats()

        assert stats["samples"] == 12
        assert stats["model"]["categories"] == ["account", "billing"]
        assert stats["reviews"]["total"] == 0
        assert stats["model"]["size"].endswith(("B", "KB", "MB"))

    def test_export(self, classify_project, tmp_path):
        _fast_training(classify_project)
        classify_project.train()
        copied = classify_project.export(tmp_path / "exported")

        names = sorted(p.name for p in copied)
        assert names == ["classifier.pt", "metadata.json"]
        assert json.loads((tmp_path / "exported" / "metadata.json").read_text())["type"] == "classifier"
