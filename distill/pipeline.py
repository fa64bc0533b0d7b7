"""
Project-level orchestration: train, retrain, predict, review and stats.

Classify projects train an MLP classifier; extract and transform projects
build a nearest-neighbor retrieval model. Retraining merges reviewed
predictions into the authored examples first.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from . import model_store
from .data.reviews import ReviewStore
from .data.samples import load_examples
from .data.types import Example
from .database.connection import DatabaseManager
from .embedding.cache import EmbeddingCache
from .embedding.provider import SentenceTransformerProvider
from .embedding.types import EmbeddingConfig
from .errors import ConfigurationError, LowAccuracyWarning, emit_warning
from .learning.classifier import ClassifierTrainer, ModelCache, PredictionResult, TrainingConfig, TrainResult, predict
from .learning.feedback import FeedbackMerger, MergeResult, require_min_samples
from .matching.retrieval import RetrievalModel, RetrievalResult, build_retrieval_model, leave_one_out_accuracy
from .utils.config_manager import ConfigManager
from .utils.paths import ProjectPaths, find_project_dir

logger = logging.getLogger(__name__)


@dataclass
class TrainingReport:
    """Outcome of a train or retrain run."""
    task_type: str
    num_samples: int
    accuracy: float
    elapsed_seconds: float
    train_result: Optional[TrainResult] = None
    merge: Optional[MergeResult] = None
    previous_accuracy: Optional[float] = None
    archived_to: Optional[Path] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def accuracy_change(self) -> Optional[float]:
        if self.previous_accuracy is None:
            return None
        return self.accuracy - self.previous_accuracy


class Project:
    """
    A distill project on disk.

    Usage:
        project = Project.find()
        report = project.train()
        result = project.predict("some input text")
    """

    def __init__(self, root: Union[str, Path], provider=None):
        """
        Args:
            root: Project directory containing distill.yaml
            provider: Embedding provider; defaults to sentence-transformers

        Raises:
            ConfigurationError: If the directory holds no valid project
        """
        self.paths = ProjectPaths(root)
        if not self.paths.config_path.exists():
            raise ConfigurationError(
                f"No {self.paths.config_path.name} found in {self.paths.root}. "
                "Are you in a distill project directory?"
            )
        self.config = ConfigManager(self.paths.config_path)
        problems = self.config.validate_config()
        if problems:
            raise ConfigurationError("Invalid project configuration: " + "; ".join(problems))

        self._provider = provider
        self._embedding_cache: Optional[EmbeddingCache] = None
        self._retrieval_model: Optional[RetrievalModel] = None
        self.model_cache = ModelCache()
        # show a progress bar while embedding training samples
        self.show_progress = False

    @classmethod
    def init(
        cls,
        root: Union[str, Path],
        name: Optional[str] = None,
        task_type: str = "classify",
        description: str = "",
        provider=None
    ) -> 'Project':
        """Create the project layout and config file."""
        paths = ProjectPaths(root)
        if paths.config_path.exists():
            raise ConfigurationError(f"A distill project already exists in {paths.root}")

        paths.ensure_layout()
        ConfigManager.create(paths.config_path, name or paths.root.name, task_type, description)
        logger.info(f"Initialized {task_type} project in {paths.root}")
        return cls(paths.root, provider=provider)

    @classmethod
    def find(cls, start: Optional[Union[str, Path]] = None, provider=None) -> 'Project':
        return cls(find_project_dir(start), provider=provider)

    @property
    def embedding_cache(self) -> EmbeddingCache:
        if self._embedding_cache is None:
            provider = self._provider or SentenceTransformerProvider(
                EmbeddingConfig.from_dict(self.config.section('embedding'))
            )
            db_manager = DatabaseManager(self.paths.embeddings_cache_path)
            self._embedding_cache = EmbeddingCache(db_manager, provider)
        return self._embedding_cache

    def training_config(self) -> TrainingConfig:
        return TrainingConfig.from_dict({
            **self.config.section('training'),
            **self.config.section('thresholds'),
        })

    def examples(self) -> List[Example]:
        return load_examples(self.paths.samples_dir)

    def reviews(self) -> ReviewStore:
        return ReviewStore(self.paths.review_results_path)

    def model_metadata(self) -> Optional[Dict[str, Any]]:
        return model_store.read_metadata(self.paths.model_dir)

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self) -> TrainingReport:
        """Train on the authored examples only."""
        return self._fit(self.examples())

    def retrain(self) -> TrainingReport:
        """Merge reviewed predictions into the examples and train again."""
        merge = FeedbackMerger().merge(self.examples(), self.reviews().items)
        return self._fit(merge.examples, merge=merge)

    def _fit(self, examples: List[Example], merge: Optional[MergeResult] = None) -> TrainingReport:
        require_min_samples(len(examples), self.config.min_samples(), self.config.task_type)

        previous = self.model_metadata()
        previous_accuracy = previous.get("accuracy") if previous else None
        archived_to = model_store.archive_model(self.paths.model_dir)

        start = time.monotonic()
        logger.info(f"Embedding {len(examples)} training samples...")
        embeddings = self.embedding_cache.embed([e.input for e in examples], progress=self.show_progress)

        train_result = None
        if self.config.is_classifier:
            trainer = ClassifierTrainer(self.training_config(), cache=self.model_cache)
            train_result = trainer.train(embeddings, [e.output for e in examples], self.paths.model_dir)
            accuracy = train_result.val_accuracy
        else:
            self._retrieval_model = None
            accuracy = leave_one_out_accuracy(embeddings, examples)
            build_retrieval_model(
                embeddings, examples, self.config.task_type, self.paths.model_dir, extra={"accuracy": accuracy}
            )
            if accuracy < self.config.get_threshold('low_accuracy'):
                emit_warning(
                    f"Model accuracy is low ({accuracy:.0%}). Consider adding more diverse training examples.",
                    LowAccuracyWarning,
                    logger,
                )

        report = TrainingReport(
            task_type=self.config.task_type,
            num_samples=len(examples),
            accuracy=accuracy,
            elapsed_seconds=time.monotonic() - start,
            train_result=train_result,
            merge=merge,
            previous_accuracy=previous_accuracy,
            archived_to=archived_to,
            metadata=self.model_metadata() or {},
        )
        logger.info(f"Training complete: {report.num_samples} samples, accuracy {accuracy:.1%}")
        return report

    # ------------------------------------------------------------------
    # Inference and review
    # ------------------------------------------------------------------

    def predict(self, text: str) -> Union[PredictionResult, RetrievalResult]:
        """
        Raises:
            ModelNotTrainedError: If no model has been trained
        """
        embedding = self.embedding_cache.embed_one(text)
        if self.config.is_classifier:
            return predict(embedding, self.paths.model_dir, cache=self.model_cache)

        if self._retrieval_model is None:
            self._retrieval_model = RetrievalModel.load(self.paths.model_dir)
        k = int(self.config.section('retrieval').get('top_k', 3))
        return self._retrieval_model.predict(embedding, k=k)

    def predict_output(self, text: str) -> str:
        result = self.predict(text)
        return result.category if isinstance(result, PredictionResult) else result.output

    def prepare_review(self) -> ReviewStore:
        """Queue a prediction for every example that has no review item yet."""
        store = self.reviews()
        store.add_pending(self.examples(), self.predict_output)
        return store

    def stats(self) -> Dict[str, Any]:
        metadata = self.model_metadata()
        stats: Dict[str, Any] = {
            "name": self.config.name,
            "task_type": self.config.task_type,
            "description": self.config.config['project'].get('description', ''),
            "samples": len(self.examples()),
            "model": None,
            "reviews": self.reviews().stats(),
        }
        if metadata:
            stats["model"] = {
                "trained_at": metadata.get("trainedAt"),
                "accuracy": metadata.get("accuracy"),
                "categories": metadata.get("categories"),
                "num_samples": metadata.get("numSamples"),
                "size": model_store.format_bytes(model_store.directory_size(self.paths.model_dir)),
            }
        return stats

    def export(self, output_dir: Union[str, Path]) -> List[Path]:
        return model_store.export_model(self.paths.model_dir, output_dir)
