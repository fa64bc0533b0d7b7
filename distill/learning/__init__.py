"""
Learning infrastructure.

- splitter: deterministic stratified train/validation split
- classifier: MLP training with early stopping, persistence and prediction
- feedback: merging reviewed predictions into the training set

The torch-backed network is imported lazily by the classifier, so the
splitter and feedback merge work without torch installed.
"""

from .splitter import SplitResult, stratified_split, label_seed
from .feedback import FeedbackMerger, MergeResult, merge_feedback, require_min_samples
from .classifier import (
    ClassifierTrainer,
    ModelCache,
    PredictionResult,
    TrainingConfig,
    TrainResult,
    one_hot_encode,
    predict,
)

__all__ = [
    "SplitResult",
    "stratified_split",
    "label_seed",
    "FeedbackMerger",
    "MergeResult",
    "merge_feedback",
    "require_min_samples",
    "ClassifierTrainer",
    "ModelCache",
    "PredictionResult",
    "TrainingConfig",
    "TrainResult",
    "one_hot_encode",
    "predict",
]
