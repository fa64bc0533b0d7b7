"""
Exception and warning types shared across distill.

Fatal conditions derive from DistillError and are reported by the CLI with
exit code 1. Non-fatal conditions are emitted as DistillWarning subclasses
through the warnings module so callers (and tests) can observe or filter them.
"""

import logging
import warnings
from typing import Optional, Type

logger = logging.getLogger(__name__)


class DistillError(Exception):
    """Base class for all fatal distill errors."""


class ConfigurationError(DistillError):
    """No project found, or the project state on disk is corrupted."""


class InsufficientDataError(DistillError):
    """Sample count is below the floor required for an operation."""

    def __init__(self, current: int, required: int, message: Optional[str] = None):
        self.current = current
        self.required = required
        super().__init__(
            message
            or f"Not enough training samples: have {current}, need at least {required}"
        )


class ProviderUnavailableError(DistillError):
    """The embedding provider or model-fitting backend could not be used."""


class ModelNotTrainedError(DistillError):
    """Prediction was requested but no model is persisted."""


class DistillWarning(UserWarning):
    """Base class for non-fatal conditions surfaced to the operator."""


class ReviewConflictWarning(DistillWarning):
    """An approved review contradicts an authored example."""


class LowSampleCountWarning(DistillWarning):
    """A category has too few examples to train reliably."""


class LowAccuracyWarning(DistillWarning):
    """A freshly trained model scored below the accuracy threshold."""


class OverfittingWarning(DistillWarning):
    """Training accuracy far exceeds validation accuracy."""


def emit_warning(message: str, category: Type[DistillWarning], source_logger: Optional[logging.Logger] = None) -> None:
    """Log a warning and raise it through the warnings machinery."""
    (source_logger or logger).warning(message)
    warnings.warn(message, category, stacklevel=3)
