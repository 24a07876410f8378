"""
Utils Module
Logging and error taxonomy
"""
from .logger import setup_logger, configure_from_settings
from .exceptions import (
    PostGenError,
    ConfigurationError,
    ConfigLoadError,
    StorageError,
    ArticleNotFoundError,
    CooldownActiveError,
    RunInProgressError,
    ProgressInvariantError,
    GenerationError,
)

__all__ = [
    "setup_logger",
    "configure_from_settings",
    "PostGenError",
    "ConfigurationError",
    "ConfigLoadError",
    "StorageError",
    "ArticleNotFoundError",
    "CooldownActiveError",
    "RunInProgressError",
    "ProgressInvariantError",
    "GenerationError",
]
