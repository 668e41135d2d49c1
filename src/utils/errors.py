"""Error handling utilities."""

from typing import Optional


class NexusError(Exception):
    """Base exception for the Nexus tasks backend."""
    pass


class SupabaseError(NexusError):
    """Supabase operation error."""
    pass


class TaskNotFoundError(NexusError):
    """Task id does not exist in the store."""

    def __init__(self, task_id: str):
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class TaskValidationError(NexusError):
    """Task data rejected before reaching the store."""

    def __init__(self, errors: list[str], task_id: Optional[str] = None):
        self.errors = errors
        self.task_id = task_id
        super().__init__("; ".join(errors) or "Invalid task data")


class RecurrenceError(NexusError):
    """Malformed recurrence rule on a template task."""

    def __init__(self, message: str, task_id: Optional[str] = None):
        self.task_id = task_id
        super().__init__(message)
