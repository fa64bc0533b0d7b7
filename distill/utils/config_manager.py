"""
Configuration management for distill projects.

Handles loading, validating, and persisting the per-project YAML file that
records the task type and the training, retrieval and threshold settings.
"""

import copy
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import yaml

from ..errors import ConfigurationError
from .fileio import atomic_write_text

logger = logging.getLogger(__name__)

CLASSIFY = "classify"
TASK_TYPES = (CLASSIFY, "extract", "transform")


class ConfigManager:
    """
    Manages project configuration.

    Values missing from the file fall back to DEFAULT_CONFIG, so older
    project files keep working when new settings are introduced.
    """

    DEFAULT_CONFIG = {
        'project': {
            'name': 'untitled',
            'type': CLASSIFY,
            'description': '',
            'created_at': None,
            'version': '1.0.0'
        },
        'embedding': {
            'model_name': 'all-MiniLM-L6-v2',
            'embedding_dim': 384
        },
        'training': {
            'max_epochs': 100,
            'patience': 10,
            'learning_rate': 0.001,
            'batch_size': 32,
            'hidden_dims': [128, 64],
            'dropout_rate': 0.2,
            'seed': 42
        },
        'retrieval': {
            'top_k': 3
        },
        'thresholds': {
            'min_samples_classify': 10,
            'min_samples_retrieval': 20,
            'low_accuracy': 0.6,
            'overfitting_gap': 0.2,
            'low_sample_count': 3
        }
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path) if config_path else None
        self.config: dict[str, Any] = {}

        if self.config_path and self.config_path.exists():
            self.load_config(self.config_path)
        else:
            logger.debug("No config file found, using defaults")
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)

    @classmethod
    def create(
        cls,
        config_path: Path,
        name: str,
        task_type: str = CLASSIFY,
        description: str = ""
    ) -> 'ConfigManager':
        """Build a fresh configuration for a new project and save it."""
        if task_type not in TASK_TYPES:
            raise ConfigurationError(
                f"Unknown task type '{task_type}'. Expected one of: {', '.join(TASK_TYPES)}"
            )

        manager = cls()
        manager.config_path = Path(config_path)
        manager.config['project'].update({
            'name': name,
            'type': task_type,
            'description': description,
            'created_at': datetime.now(timezone.utc).isoformat(),
        })
        manager.save_config()
        return manager

    def load_config(self, path: Path) -> dict[str, Any]:
        """
        Load configuration from YAML file.

        Raises:
            ConfigurationError: If the file is missing or cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")

        try:
            with open(path, 'r', encoding='utf-8') as f:
                loaded_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise ConfigurationError(f"Corrupted configuration file {path}: {e}") from e

        if not loaded_config:
            logger.warning(f"Empty config file at {path}, using defaults")
            self.config = copy.deepcopy(self.DEFAULT_CONFIG)
        elif not isinstance(loaded_config, dict):
            raise ConfigurationError(f"Corrupted configuration file {path}: expected a mapping")
        else:
            self.config = self._merge_with_defaults(loaded_config)

        self.config_path = path
        logger.debug(f"Loaded configuration from {path}")

        return self.config

    @property
    def name(self) -> str:
        return self.config['project']['name']

    @property
    def task_type(self) -> str:
        return self.config['project']['type']

    @property
    def is_classifier(self) -> bool:
        return self.task_type == CLASSIFY

    def section(self, name: str) -> dict[str, Any]:
        """Return a copy of one configuration section."""
        if name not in self.config:
            raise KeyError(f"Configuration section '{name}' not found")
        return copy.deepcopy(self.config[name])

    def get_threshold(self, name: str) -> float:
        """
        Get a threshold value by name.

        Raises:
            KeyError: If threshold name not found
        """
        if name not in self.config.get('thresholds', {}):
            raise KeyError(f"Threshold '{name}' not found in configuration")

        return self.config['thresholds'][name]

    def min_samples(self) -> int:
        """Minimum training-set size for this project's task type."""
        key = 'min_samples_classify' if self.is_classifier else 'min_samples_retrieval'
        return int(self.get_threshold(key))

    def save_config(self, path: Optional[Path] = None) -> None:
        """
        Save configuration to YAML file.

        Raises:
            ValueError: If no path provided and no config_path set
        """
        save_path = Path(path) if path else self.config_path

        if not save_path:
            raise ValueError("No path provided and no config_path set")

        atomic_write_text(save_path, yaml.safe_dump(self.config, default_flow_style=False, sort_keys=False))
        logger.info(f"Saved configuration to {save_path}")

    def _merge_with_defaults(self, loaded_config: dict) -> dict:
        """Merge loaded config with defaults to ensure all keys exist."""
        merged = copy.deepcopy(self.DEFAULT_CONFIG)

        for section, values in loaded_config.items():
            if section in merged and isinstance(values, dict):
                merged[section].update(values)
            else:
                merged[section] = values

        return merged

    def validate_config(self) -> list[str]:
        """
        Validate the current configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if self.task_type not in TASK_TYPES:
            errors.append(f"project.type must be one of {TASK_TYPES}, got '{self.task_type}'")

        training = self.config.get('training', {})
        for key in ('max_epochs', 'patience', 'batch_size'):
            value = training.get(key)
            if not isinstance(value, int) or value < 1:
                errors.append(f"training.{key} must be a positive integer")

        rate = training.get('dropout_rate')
        if not isinstance(rate, (int, float)) or not 0.0 <= rate < 1.0:
            errors.append("training.dropout_rate must be in [0, 1)")

        thresholds = self.config.get('thresholds', {})
        for name in ('low_accuracy', 'overfitting_gap'):
            value = thresholds.get(name)
            if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                errors.append(f"Threshold '{name}' must be between 0 and 1, got {value}")

        return errors
