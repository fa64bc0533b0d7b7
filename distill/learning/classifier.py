"""
Classifier training and prediction.

Trains a small MLP on sentence embeddings with a stratified validation
split, early stopping on validation loss, and restoration of the best
checkpoint. The sorted category list is saved with the model and reused
verbatim to decode predictions.

Nothing is written until the epoch loop finishes, so an interrupted run
leaves the previously persisted model untouched.
"""

import logging
import pickle
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .. import model_store
from ..errors import (
    ConfigurationError,
    InsufficientDataError,
    LowAccuracyWarning,
    ModelNotTrainedError,
    OverfittingWarning,
    ProviderUnavailableError,
    emit_warning,
)
from .splitter import stratified_split

logger = logging.getLogger(__name__)

CLASSIFIER_FILENAME = "classifier.pt"


def _network_class():
    """Import the torch-backed network, reporting a missing backend clearly."""
    try:
        from .network import ClassifierNetwork
    except ImportError as e:
        raise ProviderUnavailableError(
            "PyTorch is required to train or run classifiers. Install with: pip install torch"
        ) from e
    return ClassifierNetwork


@dataclass
class TrainingConfig:
    """Hyperparameters for the classifier and its training loop."""
    max_epochs: int = 100
    patience: int = 10
    learning_rate: float = 0.001
    batch_size: int = 32
    hidden_dims: Tuple[int, ...] = (128, 64)
    dropout_rate: float = 0.2
    seed: int = 42
    low_accuracy: float = 0.6
    overfitting_gap: float = 0.2
    low_sample_count: int = 3

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        known = {key: value for key, value in data.items() if key in cls.__dataclass_fields__}
        if 'hidden_dims' in known:
            known['hidden_dims'] = tuple(known['hidden_dims'])
        return cls(**known)


@dataclass
class TrainResult:
    """Metrics of a finished training run (after checkpoint restoration)."""
    accuracy: float
    val_accuracy: float
    epochs: int
    num_samples: int
    categories: List[str]
    best_epoch: int = 0
    history: Dict[str, List[float]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accuracy": self.accuracy,
            "valAccuracy": self.val_accuracy,
            "epochs": self.epochs,
            "numSamples": self.num_samples,
            "categories": list(self.categories),
            "bestEpoch": self.best_epoch,
        }


@dataclass
class CategoryScore:
    category: str
    confidence: float


@dataclass
class PredictionResult:
    """Top category, its confidence, and every category's score, best first."""
    category: str
    confidence: float
    all_scores: List[CategoryScore] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "output": self.category,
            "confidence": self.confidence,
            "allScores": [{"category": s.category, "confidence": s.confidence} for s in self.all_scores],
        }


def one_hot_encode(labels: Sequence[str], categories: Sequence[str]) -> np.ndarray:
    """One row per label with a single 1 at the label's index in ``categories``."""
    index = {category: i for i, category in enumerate(categories)}
    encoded = np.zeros((len(labels), len(categories)), dtype=np.float32)
    for row, label in enumerate(labels):
        encoded[row, index[label]] = 1.0
    return encoded


@dataclass
class LoadedClassifier:
    network: Any
    categories: List[str]
    metadata: Dict[str, Any]


def load_classifier(model_dir: Union[str, Path]) -> LoadedClassifier:
    """
    Load ``classifier.pt``; categories and metadata come from the same file
    as the parameters.

    Raises:
        ModelNotTrainedError: If no classifier is stored in ``model_dir``
        ConfigurationError: If the stored file is unreadable or its category
            list does not match the network's output size
    """
    model_dir = Path(model_dir)
    model_path = model_dir / CLASSIFIER_FILENAME
    if not model_path.exists():
        raise ModelNotTrainedError('No trained model found. Run "distill train" first.')

    try:
        network, save_dict = _network_class().load(model_path)
    except (RuntimeError, EOFError, KeyError, ValueError, pickle.UnpicklingError) as e:
        raise ConfigurationError(f"Corrupted classifier at {model_path}: {e}") from e

    categories = list(save_dict.get('categories') or [])
    if len(categories) != network.num_classes:
        raise ConfigurationError(
            f"Classifier at {model_path} has {network.num_classes} outputs "
            f"but {len(categories)} stored categories"
        )

    metadata = dict(save_dict.get('metadata') or {})
    metadata['categories'] = categories
    logger.debug(f"Loaded classifier from {model_dir}")
    return LoadedClassifier(network=network, categories=categories, metadata=metadata)


class ModelCache:
    """
    Single-entry cache of the last loaded classifier, keyed by model directory.

    Owned by the caller; the trainer invalidates it after writing a new model.
    """

    def __init__(self):
        self._key: Optional[Path] = None
        self._entry: Optional[LoadedClassifier] = None

    def get(self, model_dir: Union[str, Path]) -> LoadedClassifier:
        key = Path(model_dir).resolve()
        if self._entry is None or self._key != key:
            self._entry = load_classifier(key)
            self._key = key
        return self._entry

    def invalidate(self, model_dir: Optional[Union[str, Path]] = None) -> None:
        """Drop the cached model (only if it belongs to ``model_dir`` when given)."""
        if model_dir is None or self._key == Path(model_dir).resolve():
            self._key = None
            self._entry = None

    def __contains__(self, model_dir: Union[str, Path]) -> bool:
        return self._entry is not None and self._key == Path(model_dir).resolve()


class ClassifierTrainer:
    """
    Fits and persists a category classifier over fixed-dimension embeddings.

    Usage:
        trainer = ClassifierTrainer(TrainingConfig(), cache=model_cache)
        result = trainer.train(embeddings, labels, paths.model_dir)
    """

    def __init__(self, config: Optional[TrainingConfig] = None, cache: Optional[ModelCache] = None):
        self.config = config or TrainingConfig()
        self.cache = cache

    def train(
        self,
        embeddings: Union[np.ndarray, Sequence[Sequence[float]]],
        labels: Sequence[str],
        model_dir: Union[str, Path]
    ) -> TrainResult:
        """
        Train a classifier and write it to ``model_dir``.

        Raises:
            InsufficientDataError: Fewer than two categories
            ValueError: Embeddings and labels do not line up
        """
        X = np.asarray(embeddings, dtype=np.float32)
        labels = list(labels)
        if X.ndim != 2 or X.shape[0] != len(labels):
            raise ValueError(f"Expected {len(labels)} embeddings, got array of shape {X.shape}")

        categories = sorted(set(labels))
        if len(categories) < 2:
            raise InsufficientDataError(
                len(categories), 2, "A classifier needs examples of at least 2 different categories"
            )

        Y = one_hot_encode(labels, categories)
        split = stratified_split(labels, low_sample_count=self.config.low_sample_count)
        X_train, Y_train = X[split.train_indices], Y[split.train_indices]
        X_val, Y_val = X[split.val_indices], Y[split.val_indices]
        has_validation = split.num_val > 0
        if not has_validation:
            logger.warning("Validation split is empty; using training metrics for early stopping")

        cfg = self.config
        network = _network_class()(
            input_dim=X.shape[1],
            num_classes=len(categories),
            hidden_dims=cfg.hidden_dims,
            dropout_rate=cfg.dropout_rate,
            learning_rate=cfg.learning_rate,
            batch_size=cfg.batch_size,
            seed=cfg.seed
        )

        logger.info(f"Training classifier with {split.num_train} samples, validating on {split.num_val}...")

        history: Dict[str, List[float]] = {'train_loss': [], 'train_acc': [], 'val_loss': [], 'val_acc': []}
        best_val_loss = float('inf')
        best_epoch = 0
        best_parameters = None
        best_metrics = (0.0, 0.0)
        epochs_without_improvement = 0
        epochs_run = 0

        for epoch in range(cfg.max_epochs):
            train_loss, train_acc = network.fit_epoch(X_train, Y_train)
            if has_validation:
                val_loss, val_acc = network.evaluate(X_val, Y_val)
            else:
                val_loss, val_acc = train_loss, train_acc

            history['train_loss'].append(train_loss)
            history['train_acc'].append(train_acc)
            history['val_loss'].append(val_loss)
            history['val_acc'].append(val_acc)
            epochs_run = epoch + 1

            if (epoch + 1) % 5 == 0:
                logger.debug(
                    f"Epoch {epoch+1}/{cfg.max_epochs} - "
                    f"Train Loss: {train_loss:.4f}, Train Acc: {train_acc:.4f}, "
                    f"Val Loss: {val_loss:.4f}, Val Acc: {val_acc:.4f}"
                )

            if val_loss < best_val_loss:
                best_val_loss = val_loss
                best_epoch = epoch
                best_parameters = network.get_parameters()
                best_metrics = (train_acc, val_acc)
                epochs_without_improvement = 0
            else:
                epochs_without_improvement += 1
                if epochs_without_improvement >= cfg.patience:
                    logger.info(f"Early stopping at epoch {epoch+1} (best at epoch {best_epoch+1})")
                    break

        train_acc, val_acc = history['train_acc'][-1], history['val_acc'][-1]
        if best_parameters is not None and best_epoch != epochs_run - 1:
            network.set_parameters(best_parameters)
            train_acc, val_acc = best_metrics
            logger.info(f"Restored best model from epoch {best_epoch+1} (val loss {best_val_loss:.4f})")

        result = TrainResult(
            accuracy=float(train_acc),
            val_accuracy=float(val_acc),
            epochs=epochs_run,
            num_samples=len(labels),
            categories=categories,
            best_epoch=best_epoch + 1,
            history=history,
        )

        self._save(network, result, Path(model_dir))
        self._check_quality(result)
        return result

    def _save(self, network, result: TrainResult, model_dir: Path) -> None:
        model_dir.mkdir(parents=True, exist_ok=True)
        metadata = {
            "type": "classifier",
            "categories": result.categories,
            "trainedAt": model_store.utc_timestamp(),
            "numSamples": result.num_samples,
            "accuracy": result.val_accuracy,
            "trainAccuracy": result.accuracy,
            "valAccuracy": result.val_accuracy,
            "epochs": result.epochs,
            "bestEpoch": result.best_epoch,
            "embeddingDim": network.input_dim,
        }
        # classifier.pt is the only file prediction reads; metadata.json is a summary of it
        network.save(model_dir / CLASSIFIER_FILENAME, extra={'categories': result.categories, 'metadata': metadata})
        if self.cache is not None:
            self.cache.invalidate(model_dir)
        model_store.write_metadata(model_dir, metadata)
        model_store.remove_artifacts(model_dir, model_store.RETRIEVAL_FILES)
        logger.info(f"Classifier saved to {model_dir}")

    def _check_quality(self, result: TrainResult) -> None:
        if result.val_accuracy < self.config.low_accuracy:
            emit_warning(
                f"Model accuracy is low ({result.val_accuracy:.0%}). "
                "Consider adding more diverse training examples.",
                LowAccuracyWarning,
                logger,
            )
        if result.accuracy - result.val_accuracy > self.config.overfitting_gap:
            emit_warning(
                f"Training accuracy ({result.accuracy:.0%}) is well above validation accuracy "
                f"({result.val_accuracy:.0%}); the model may be overfitting.",
                OverfittingWarning,
                logger,
            )


def predict(
    embedding: Union[np.ndarray, Sequence[float]],
    model_dir: Union[str, Path],
    cache: Optional[ModelCache] = None
) -> PredictionResult:
    """
    Classify one embedding with the model stored in ``model_dir``.

    Raises:
        ModelNotTrainedError: If no classifier is stored
    """
    loaded = cache.get(model_dir) if cache is not None else load_classifier(model_dir)
    scores = loaded.network.predict_proba(np.asarray(embedding, dtype=np.float32))[0]

    all_scores = sorted(
        (CategoryScore(category, float(score)) for category, score in zip(loaded.categories, scores)),
        key=lambda s: s.confidence,
        reverse=True,
    )
    best = all_scores[0]
    return PredictionResult(category=best.category, confidence=best.confidence, all_scores=all_scores)
