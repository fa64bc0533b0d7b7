"""Project layout and configuration helpers."""

from .config_manager import ConfigManager, CLASSIFY, TASK_TYPES
from .paths import ProjectPaths, find_project_dir, CONFIG_FILENAME

__all__ = [
    "ConfigManager",
    "CLASSIFY",
    "TASK_TYPES",
    "ProjectPaths",
    "find_project_dir",
    "CONFIG_FILENAME",
]
