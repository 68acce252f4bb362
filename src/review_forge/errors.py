"""Exception types raised across the review pipeline."""


class ReviewForgeError(Exception):
    """Base class for review pipeline errors."""


class GateUnavailableError(ReviewForgeError):
    """The review gate's persistence layer could not be reached."""


class LLMUnavailableError(ReviewForgeError):
    """The model provider failed after all retry attempts."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SyncInProgressError(ReviewForgeError):
    """A history sync is already running."""
