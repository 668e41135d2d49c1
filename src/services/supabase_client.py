"""Supabase client wrapper and task store operations."""

import os
from datetime import datetime
from typing import Any, Optional
from pydantic import ValidationError
from supabase import create_client, Client
from supabase.client import ClientOptions

from src.models.task import Task, TaskCreationRequest
from src.utils.config import TaskConfig
from src.utils.errors import SupabaseError, TaskNotFoundError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")

        if not url or not key:
            raise SupabaseError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the cached client; supabase-py has no explicit close."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                type=exc_type.__name__
            )
        return False


def _tasks_table(client: Client):
    return client.table(TaskConfig.TASKS_TABLE)


def _first_task(result: Any) -> Optional[Task]:
    if result.data and len(result.data) > 0:
        return Task.model_validate(result.data[0])
    return None


async def list_tasks() -> list[Task]:
    """Get all tasks, newest first; rows that fail validation are logged and left out."""
    async with SupabaseClient() as client:
        try:
            result = _tasks_table(client).select("*").order("created_at", desc=True).execute()
            rows = result.data if result.data else []
        except Exception as e:
            raise SupabaseError(f"Failed to list tasks: {e}") from e

    tasks = []
    for row in rows:
        try:
            tasks.append(Task.model_validate(row))
        except ValidationError as e:
            logger.warning(
                "Skipping malformed task row",
                task_id=row.get("id"),
                error_count=e.error_count(),
                error=str(e)
            )
    return tasks


async def get_task(task_id: str) -> Optional[Task]:
    """Get a task by ID."""
    async with SupabaseClient() as client:
        try:
            result = _tasks_table(client).select("*").eq("id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to get task {task_id}: {e}") from e

    return _first_task(result)


async def create_task(request: TaskCreationRequest) -> Task:
    """Insert a task; the store assigns id, created_at and updated_at."""
    async with SupabaseClient() as client:
        try:
            result = _tasks_table(client).insert(request.to_record()).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to create task: {e}") from e

    task = _first_task(result)
    if task is None:
        raise SupabaseError("Failed to create task: no data returned")
    return task


async def update_task(task_id: str, updates: dict[str, Any]) -> Task:
    """Update the given columns of a task."""
    async with SupabaseClient() as client:
        try:
            result = _tasks_table(client).update(updates).eq("id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update task {task_id}: {e}") from e

    task = _first_task(result)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task


async def update_task_watermark(
    template: Task,
    last_generated: datetime,
    compare_and_swap: bool = True
) -> bool:
    """
    Advance a template's ``lastGenerated`` watermark.

    The rule is stored as one JSON column, so the whole rule is rewritten.
    With ``compare_and_swap`` the update only matches while the row's
    ``updated_at`` is still the value ``template`` was read with; returns
    False when another writer got there first.
    """
    if template.recurring is None:
        raise SupabaseError(f"Task {template.id} has no recurrence rule")

    rule = template.recurring.model_copy(update={"last_generated": last_generated})
    payload = {
        "recurring": rule.to_record(),
        "updated_at": last_generated.isoformat(),
    }

    async with SupabaseClient() as client:
        try:
            query = _tasks_table(client).update(payload).eq("id", template.id)
            if compare_and_swap and template.updated_at is not None:
                query = query.eq("updated_at", template.updated_at.isoformat())
            result = query.execute()
        except Exception as e:
            raise SupabaseError(f"Failed to update watermark for task {template.id}: {e}") from e

    return bool(result.data)


async def update_task_completion(
    task_id: str,
    completed: bool,
    completed_at: Optional[datetime]
) -> Task:
    """Set a task's completion state."""
    return await update_task(task_id, {
        "completed": completed,
        "completed_at": completed_at.isoformat() if completed_at else None,
    })


async def delete_task(task_id: str) -> None:
    """Delete a task by ID."""
    async with SupabaseClient() as client:
        try:
            _tasks_table(client).delete().eq("id", task_id).execute()
        except Exception as e:
            raise SupabaseError(f"Failed to delete task {task_id}: {e}") from e
