"""Custom exceptions for scenario-sync."""

from typing import Any


class ScenarioSyncError(Exception):
    """Base exception for all scenario-sync errors."""

    pass


# =============================================================================
# Document Store Exceptions
# =============================================================================


class NoActiveDocumentError(ScenarioSyncError):
    """Raised when a document operation runs before initialize/load."""

    def __init__(self, operation: str | None = None):
        self.operation = operation
        if operation:
            super().__init__(f"No active scenario (operation '{operation}' requires one)")
        else:
            super().__init__("No active scenario")


class PathError(ScenarioSyncError, TypeError):
    """Raised when a path is malformed or cannot be traversed."""

    def __init__(self, path: Any, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid path {path!r}: {reason}")


class ArrayOperationError(ScenarioSyncError):
    """Raised when an array section operation cannot be applied."""

    def __init__(self, path: Any, op: str, reason: str, match_id: str | None = None):
        self.path = path
        self.op = op
        self.reason = reason
        self.match_id = match_id
        target = f" (id '{match_id}')" if match_id is not None else ""
        super().__init__(f"Array '{op}' at {path!r}{target} failed: {reason}")


class ValidationError(ScenarioSyncError):
    """Raised when a view's buffered values fail field-level validation.

    Stays local to the view that produced it; never fails a commit batch.
    """

    def __init__(self, view_id: str, errors: list[str]):
        self.view_id = view_id
        self.errors = errors
        error_list = "; ".join(errors[:5])
        if len(errors) > 5:
            error_list += f" ... and {len(errors) - 5} more"
        super().__init__(f"Validation failed for view '{view_id}': {error_list}")


# =============================================================================
# Sync Protocol Exceptions
# =============================================================================


class NoIdentityError(ScenarioSyncError):
    """Raised when update() is invoked on a scenario that was never persisted."""

    def __init__(self):
        super().__init__("No saved scenario to update")


class CommitFailureError(ScenarioSyncError):
    """Raised when a view's commit function throws during a batch."""

    def __init__(self, view_id: str, original_error: Exception):
        self.view_id = view_id
        self.original_error = original_error
        super().__init__(f"Commit failed for view '{view_id}': {original_error}")


class RemoteFailureError(ScenarioSyncError):
    """Raised when the remote service reports a failure."""

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        self.operation = operation
        self.status_code = status_code
        status = f" [{status_code}]" if status_code is not None else ""
        super().__init__(f"Remote '{operation}' failed{status}: {message}")


class RetryExhaustedError(ScenarioSyncError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, attempts: int, last_error: Exception):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_error}")


class OperationInProgressError(ScenarioSyncError):
    """Raised when a persistence operation starts while another is in flight."""

    def __init__(self, operation: str, running: str):
        self.operation = operation
        self.running = running
        super().__init__(
            f"Cannot start '{operation}' while '{running}' is still in progress"
        )
