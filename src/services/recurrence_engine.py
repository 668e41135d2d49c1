"""Recurrence engine - decide which recurring templates are due and build their next occurrence.

The engine is a pure function over the task list and a timestamp. It performs
no I/O: creation requests and watermark updates are returned for the caller
to persist (see ``recurring_task_runner``).
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional, Union
from dateutil.relativedelta import relativedelta

from src.models.evaluation import EvaluationResult
from src.models.task import RecurrenceType, Task, TaskCreationRequest
from src.utils.errors import RecurrenceError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def advance(anchor: datetime, recurrence_type: Union[RecurrenceType, str], interval: int) -> datetime:
    """
    Move ``anchor`` forward by ``interval`` units of ``recurrence_type``.

    Monthly steps keep the day of month where the target month has it and
    otherwise clamp to the month's last day (Jan 31 + 1 month -> Feb 28/29).
    Time of day and tzinfo are preserved.
    """
    try:
        unit = RecurrenceType(recurrence_type)
    except ValueError:
        raise RecurrenceError(f"Unknown recurrence type: {recurrence_type!r}")

    if interval < 1:
        raise RecurrenceError(f"Recurrence interval must be at least 1, got {interval}")

    if unit is RecurrenceType.DAILY:
        return anchor + timedelta(days=interval)
    if unit is RecurrenceType.WEEKLY:
        return anchor + timedelta(days=interval * 7)
    return anchor + relativedelta(months=interval)


def get_anchor(task: Task) -> datetime:
    """Last confirmed occurrence point: the watermark, else the template's creation time."""
    if task.recurring and task.recurring.last_generated is not None:
        return task.recurring.last_generated
    return task.created_at


def next_due_date(task: Task) -> datetime:
    """Next occurrence date for a template task, coercing ``interval < 1`` to 1."""
    rule = task.recurring
    if rule is None:
        raise RecurrenceError("Task has no recurrence rule", task_id=task.id)

    interval = rule.interval
    if interval < 1:
        logger.warning(
            "Coercing invalid recurrence interval to 1",
            task_id=task.id,
            interval=interval
        )
        interval = 1

    try:
        return advance(get_anchor(task), rule.type, interval)
    except RecurrenceError as e:
        e.task_id = task.id
        raise


def build_occurrence(template: Task, due_date: datetime) -> TaskCreationRequest:
    """Clone a template into a fresh, uncompleted occurrence due at ``due_date``."""
    return TaskCreationRequest(
        title=template.title,
        description=template.description,
        category=template.category,
        priority=template.priority,
        due_date=due_date,
        completed=False,
        assigned_to=template.assigned_to,
        tags=list(template.tags),
        recurring=template.recurring.model_copy() if template.recurring else None,
        source_task_id=template.id,
    )


def _evaluate_template(task: Task, now: datetime) -> Optional[TaskCreationRequest]:
    next_due = next_due_date(task)

    end_date = task.recurring.end_date
    if end_date is not None and next_due >= end_date:
        logger.debug(
            "Recurrence ended",
            task_id=task.id,
            next_due=next_due.isoformat(),
            end_date=end_date.isoformat()
        )
        return None

    if next_due > now:
        return None

    return build_occurrence(task, next_due)


def evaluate(tasks: Iterable[Task], now: datetime) -> EvaluationResult:
    """
    Evaluate every recurring, uncompleted task against ``now``.

    Each due template yields exactly one creation request (due at the next
    occurrence after its anchor) and a watermark update to ``now``. Missed
    periods are not backfilled. Completed templates are paused and never
    generate. A malformed template is logged and skipped without affecting
    the others.
    """
    result = EvaluationResult()

    for task in tasks:
        if task.recurring is None or task.completed:
            continue

        try:
            occurrence = _evaluate_template(task, now)
        except (RecurrenceError, TypeError, ValueError, OverflowError) as e:
            logger.warning(
                "Skipping malformed recurring task",
                task_id=task.id,
                recurrence_type=task.recurring.type,
                interval=task.recurring.interval,
                error=str(e)
            )
            continue

        if occurrence is None:
            continue

        result.to_create.append(occurrence)
        result.to_update_watermark[task.id] = now

    if result.to_create:
        logger.info(
            "Recurring tasks due",
            due_count=len(result.to_create),
            template_ids=list(result.to_update_watermark),
            now=now.isoformat()
        )

    return result
