"""Orchestration-level exceptions."""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models.migration import MigrationRecord
    from .models.pipeline import PipelineTestResult


class MigrationToolError(Exception):
    """Base exception for migration tool errors."""

    pass


class ConfigurationError(MigrationToolError):
    """Invalid or missing configuration or command arguments."""

    pass


class PipelineLookupError(MigrationToolError):
    """A pipeline name could not be resolved to an id."""

    def __init__(self, message: str, pipeline: Optional[str] = None):
        super().__init__(message)
        self.pipeline = pipeline


class MigrationFailedError(MigrationToolError):
    """A remote migration reached a failure terminal state."""

    def __init__(self, message: str, record: Optional['MigrationRecord'] = None):
        """Initialize migration failure.

        Args:
            message: Error message (the remote failure reason for repositories)
            record: Last observed migration record
        """
        super().__init__(message)
        self.record = record


class RetryExhaustedError(MigrationToolError):
    """A value never became available within the retry budget."""

    pass


class PipelineTestError(MigrationToolError):
    """A pipeline dry-run test was aborted."""

    def __init__(self, message: str, result: Optional['PipelineTestResult'] = None):
        """Initialize pipeline test error.

        Args:
            message: Error message
            result: Partially populated test result of the aborted run
        """
        super().__init__(message)
        self.result = result
