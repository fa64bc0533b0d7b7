"""
Tests for the epoch loop of ClassifierTrainer.

A scripted network stands in for the torch one so that the validation loss
of every epoch is known in advance.
"""

import json

import numpy as np
import pytest

from distill.learning import classifier
from distill.learning.classifier import ClassifierTrainer, TrainingConfig

# (train_loss, train_acc, val_loss, val_acc) per epoch; epoch 2 has the lowest validation loss
SCRIPT = [
    (0.9, 0.60, 1.0, 0.50),
    (0.6, 0.80, 0.5, 0.90),
    (0.4, 0.90, 0.9, 0.60),
    (0.3, 0.95, 0.8, 0.70),
    (0.2, 1.00, 0.7, 0.70),
    (0.1, 1.00, 0.6, 0.80),
]


class ScriptedNetwork:
    """Network whose only parameter counts the epochs fitted so far."""

    def __init__(self, input_dim, num_classes, **kwargs):
        self.input_dim = input_dim
        self.num_classes = num_classes
        self.parameters = {"epoch": 0}

    def fit_epoch(self, X, Y):
        self.parameters["epoch"] += 1
        train_loss, train_acc, _, _ = SCRIPT[self.parameters["epoch"] - 1]
        return train_loss, train_acc

    def evaluate(self, X, Y):
        _, _, val_loss, val_acc = SCRIPT[self.parameters["epoch"] - 1]
        return val_loss, val_acc

    def get_parameters(self):
        return dict(self.parameters)

    def set_parameters(self, parameters):
        self.parameters = dict(parameters)

    def save(self, path, extra=None):
        path.write_text(json.dumps({"parameters": self.parameters, **(extra or {})}))


@pytest.fixture
def scripted(monkeypatch):
    monkeypatch.setattr(classifier, "_network_class", lambda: ScriptedNetwork)


@pytest.fixture
def data():
    labels = ["a"] * 5 + ["b"] * 5
    return np.zeros((10, 4), dtype=np.float32), labels


def test_best_epoch_snapshot_is_persisted(tmp_path, scripted, data):
    embeddings, labels = data
    config = TrainingConfig(max_epochs=len(SCRIPT), patience=3)

    result = ClassifierTrainer(config).train(embeddings, labels, tmp_path)

    assert result.epochs == 5
    assert result.best_epoch == 2
    assert result.accuracy == pytest.approx(0.80)
    assert result.val_accuracy == pytest.approx(0.90)

    saved = json.loads((tmp_path / "classifier.pt").read_text())
    assert saved["parameters"] == {"epoch": 2}
    assert saved["categories"] == ["a", "b"]
    assert saved["metadata"]["bestEpoch"] == 2

    metadata = json.loads((tmp_path / "metadata.json").read_text())
    assert metadata["accuracy"] == pytest.approx(0.90)
    assert metadata["epochs"] == 5


def test_last_epoch_kept_when_it_is_best(tmp_path, scripted, data):
    embeddings, labels = data
    config = TrainingConfig(max_epochs=2, patience=3)

    result = ClassifierTrainer(config).train(embeddings, labels, tmp_path)

    assert result.best_epoch == 2
    saved = json.loads((tmp_path / "classifier.pt").read_text())
    assert saved["parameters"] == {"epoch": 2}
