"""chaptertrack common - shared errors, configuration and logging.

Dependencies: pydantic-settings, structlog.
"""

from chaptertrack_common.config import Settings, get_settings
from chaptertrack_common.errors import (
    CandidateValidationError,
    ChapterTrackError,
    ConfigurationError,
    MergeRefusedError,
    QueueError,
    ResolutionError,
    StorageError,
    SyncError,
)
from chaptertrack_common.logging_config import configure_logging, get_logger

__version__ = "1.0.0"

__all__ = [
    "Settings",
    "get_settings",
    "configure_logging",
    "get_logger",
    "ChapterTrackError",
    "ConfigurationError",
    "StorageError",
    "QueueError",
    "SyncError",
    "ResolutionError",
    "CandidateValidationError",
    "MergeRefusedError",
]
