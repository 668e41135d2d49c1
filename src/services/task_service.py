"""Task service - validated task writes and task list loading."""

from datetime import datetime
from typing import Optional, Union

from src.models.task import RecurrenceRule, RecurrenceType, Task, TaskCreationRequest, TaskUpdate
from src.models.task_filters import TaskStats
from src.services import supabase_client as store
from src.services.task_queries import calculate_stats
from src.utils.dates import utc_now
from src.utils.errors import TaskNotFoundError, TaskValidationError
from src.utils.logging import get_structured_logger, mask_assignee, timed

logger = get_structured_logger(__name__)


def validate_recurrence_rule(rule: RecurrenceRule, due_date: Optional[datetime] = None) -> list[str]:
    """Errors for a recurrence rule; an empty list means the rule is valid."""
    errors = []

    valid_types = [t.value for t in RecurrenceType]
    if rule.type not in valid_types:
        errors.append(f"Recurring type must be one of: {', '.join(valid_types)}")

    if rule.interval < 1:
        errors.append("Recurring interval must be at least 1")

    if rule.end_date is not None and due_date is not None and rule.end_date <= due_date:
        errors.append("Recurring end date must be after the due date")

    return errors


def validate_task(
    data: Union[TaskCreationRequest, TaskUpdate],
    now: datetime,
    is_new: bool = True
) -> list[str]:
    """
    Errors for task input; an empty list means the data may be written.

    New tasks must not be due in the past. Updates only validate the
    fields they set.
    """
    errors = []

    if is_new or data.title is not None:
        if not (data.title or "").strip():
            errors.append("Task title is required")

    if is_new and data.due_date < now:
        errors.append("Due date cannot be in the past")

    if data.recurring is not None:
        errors.extend(validate_recurrence_rule(data.recurring, data.due_date))

    return errors


async def create_task(data: TaskCreationRequest, now: Optional[datetime] = None) -> Task:
    """Validate and store a new task."""
    errors = validate_task(data, now or utc_now())
    if errors:
        raise TaskValidationError(errors)

    task = await store.create_task(data)
    logger.info(
        "Task created",
        task_id=task.id,
        category=task.category.value,
        priority=task.priority.value,
        recurring=task.recurring.type if task.recurring else None,
        assigned_to=mask_assignee(task.assigned_to)
    )
    return task


async def update_task(task_id: str, update: TaskUpdate, now: Optional[datetime] = None) -> Task:
    """Apply the fields set on ``update``; completion changes also set ``completed_at``."""
    now = now or utc_now()
    errors = validate_task(update, now, is_new=False)
    if errors:
        raise TaskValidationError(errors, task_id=task_id)

    updates = update.to_record()
    if not updates:
        task = await store.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    if "completed" in updates:
        updates["completed_at"] = now.isoformat() if updates["completed"] else None

    task = await store.update_task(task_id, updates)
    logger.info("Task updated", task_id=task_id, fields=sorted(updates))
    return task


async def complete_task(task_id: str, completed: bool = True, now: Optional[datetime] = None) -> Task:
    """Mark a task completed (stamping ``completed_at``) or reopen it."""
    completed_at = (now or utc_now()) if completed else None
    task = await store.update_task_completion(task_id, completed, completed_at)
    logger.info("Task completion changed", task_id=task_id, completed=completed)
    return task


async def delete_task(task_id: str) -> None:
    await store.delete_task(task_id)
    logger.info("Task deleted", task_id=task_id)


@timed("load_tasks")
async def load_tasks(now: Optional[datetime] = None) -> tuple[list[Task], TaskStats]:
    """Fetch the task list with its summary stats."""
    tasks = await store.list_tasks()
    return tasks, calculate_stats(tasks, now or utc_now())
