"""Error types raised by the cleaning pipeline."""


class CleaningError(Exception):
    """Base class for cleaning pipeline failures."""

    error_code = "CLEANING_ERROR"


class ConfigError(CleaningError):
    """Raised for invalid or unreadable configuration."""

    error_code = "CONFIG_ERROR"


class RecordValidationError(CleaningError):
    """A raw record is malformed. The record is skipped, the run continues."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, row: dict | None = None):
        super().__init__(message)
        self.row = row


class StoreUnavailableError(CleaningError):
    """The raw or cleaned store could not be reached. The run is aborted."""

    error_code = "STORE_UNAVAILABLE"


class RunTimeoutError(CleaningError):
    """A run exceeded its execution budget. Retryable; effects are rolled back."""

    error_code = "RUN_TIMEOUT"


class ConcurrentRunSkipped(CleaningError):
    """Another run held the pipeline lock. Informational, not a failure."""

    error_code = "CONCURRENT_RUN_SKIPPED"
