"""
Custom exception hierarchy for the Taskflow application.
"""

from typing import Any, Dict, Optional


class TaskflowError(Exception):
    """Base exception for all Taskflow errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class ConfigurationError(TaskflowError):
    """Configuration-related errors."""

    pass


class ValidationError(TaskflowError):
    """Data validation errors."""

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value


class RecordNotFoundError(TaskflowError):
    """A referenced row does not exist in the store."""

    def __init__(self, message: str, record_type: Optional[str] = None, record_id: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.record_type = record_type
        self.record_id = record_id


class TaskNotFoundError(RecordNotFoundError):
    """The requested task does not exist."""

    def __init__(self, task_id: str, **kwargs):
        super().__init__(f"Task not found: {task_id}", record_type="task", record_id=task_id, **kwargs)
        self.task_id = task_id


class PermissionDeniedError(TaskflowError):
    """Actor lacks the role required for a non-transition operation."""

    def __init__(self, message: str, action: Optional[str] = None, actor_id: Optional[str] = None, **kwargs):
        super().__init__(message, error_code=kwargs.pop("error_code", "permission_denied"), **kwargs)
        self.action = action
        self.actor_id = actor_id


class TransitionError(TaskflowError):
    """Base class for rejected status transitions. Never retryable."""

    def __init__(self, message: str, from_status: Optional[str] = None, to_status: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.from_status = from_status
        self.to_status = to_status

    @property
    def pair(self):
        return (self.from_status, self.to_status)


class InvalidTransitionError(TransitionError):
    """The (from, to) pair is not in the transition table, regardless of actor."""

    def __init__(self, from_status: str, to_status: str, **kwargs):
        super().__init__(
            f"Transition not permitted: {from_status} → {to_status}",
            from_status=from_status,
            to_status=to_status,
            error_code="invalid_transition",
            **kwargs,
        )


class UnauthorizedTransitionError(TransitionError):
    """The pair exists but the actor does not hold a role allowed to request it."""

    def __init__(self, from_status: str, to_status: str, actor_id: Optional[str] = None, **kwargs):
        super().__init__(
            f"Actor {actor_id} is not authorized for transition {from_status} → {to_status}",
            from_status=from_status,
            to_status=to_status,
            error_code="unauthorized",
            **kwargs,
        )
        self.actor_id = actor_id


class TransitionConflictError(TransitionError):
    """The stored status changed between read and conditional write."""

    def __init__(self, task_id: str, expected_status: str, to_status: str, actual_status: Optional[str] = None, **kwargs):
        super().__init__(
            f"Task {task_id} is no longer in '{expected_status}' (now '{actual_status}'); transition to '{to_status}' dropped",
            from_status=expected_status,
            to_status=to_status,
            error_code="conflict",
            **kwargs,
        )
        self.task_id = task_id
        self.actual_status = actual_status


class RetryableError(TaskflowError):
    """Errors that can be retried."""

    def __init__(self, message: str, retry_count: int = 0, max_retries: int = 3, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_count = retry_count
        self.max_retries = max_retries

    @property
    def can_retry(self) -> bool:
        """Check if this error can be retried."""
        return self.retry_count < self.max_retries


class StoreUnavailableError(RetryableError):
    """Persistence-layer failure (network, database) during a read or write."""

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(message, error_code=kwargs.pop("error_code", "store_unavailable"), **kwargs)
        self.operation = operation


class StorageError(TaskflowError):
    """Object storage errors."""

    def __init__(self, message: str, key: Optional[str] = None, operation: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.key = key
        self.operation = operation
