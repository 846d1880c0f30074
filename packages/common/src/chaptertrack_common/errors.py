"""Custom error types for the chaptertrack system.

All errors follow the "fail fast" principle with explicit messages.
"""


class ChapterTrackError(Exception):
    """Base exception for all chaptertrack errors."""

    pass


class ConfigurationError(ChapterTrackError):
    """Invalid or missing configuration."""

    pass


class StorageError(ChapterTrackError):
    """Error during database operations."""

    pass


class QueueError(StorageError):
    """Error enqueueing, claiming or settling a job."""

    pass


class SyncError(ChapterTrackError):
    """Error during chapter synchronization (e.g. unknown series source)."""

    pass


class ResolutionError(ChapterTrackError):
    """Error during metadata resolution."""

    pass


class CandidateValidationError(ResolutionError):
    """A metadata candidate failed validation.

    Raised internally and converted to a "no match" outcome. A candidate that
    fails validation is never partially committed.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("Invalid metadata candidate: " + "; ".join(errors))


class MergeRefusedError(ResolutionError):
    """Deleting a duplicate library entry would lose progress or a manual link."""

    pass
