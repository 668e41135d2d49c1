"""Task list queries - filtering, sorting, due-date classification and summary stats.

All functions work on tasks already loaded from the store and take ``now``
explicitly so results do not depend on the wall clock.
"""

from datetime import datetime, timedelta
from typing import Iterable, Union
from dateutil.relativedelta import relativedelta

from src.models.task import Task, TaskPriority
from src.models.task_filters import TaskFilters, TaskSortField, TaskStats, TaskStatusFilter
from src.utils.dates import ensure_utc

PRIORITY_ORDER = {
    TaskPriority.LOW: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.HIGH: 3,
    TaskPriority.URGENT: 4,
}


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_week(now: datetime) -> datetime:
    """Most recent Sunday at midnight."""
    days_since_sunday = (now.weekday() + 1) % 7
    return start_of_day(now) - timedelta(days=days_since_sunday)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def is_overdue(task: Task, now: datetime) -> bool:
    return not task.completed and task.due_date < now


def is_due_today(task: Task, now: datetime) -> bool:
    today = start_of_day(now)
    return today <= task.due_date < today + timedelta(days=1)


def is_due_this_week(task: Task, now: datetime) -> bool:
    week_start = start_of_week(now)
    return week_start <= task.due_date < week_start + timedelta(days=7)


def is_due_this_month(task: Task, now: datetime) -> bool:
    month_start = start_of_month(now)
    return month_start <= task.due_date < month_start + relativedelta(months=1)


def _matches_search(task: Task, search: str) -> bool:
    needle = search.lower()
    return (
        needle in task.title.lower()
        or needle in task.description.lower()
        or any(needle in tag.lower() for tag in task.tags)
    )


def _matches(task: Task, filters: TaskFilters, now: datetime) -> bool:
    if filters.search and not _matches_search(task, filters.search):
        return False

    if filters.category and filters.category != "all" and task.category.value != filters.category:
        return False

    if filters.priority and filters.priority != "all" and task.priority.value != filters.priority:
        return False

    if filters.status == TaskStatusFilter.PENDING and task.completed:
        return False
    if filters.status == TaskStatusFilter.COMPLETED and not task.completed:
        return False
    if filters.status == TaskStatusFilter.OVERDUE and not is_overdue(task, now):
        return False

    if filters.assigned_to and task.assigned_to != filters.assigned_to:
        return False

    if filters.due_date_from and task.due_date < ensure_utc(filters.due_date_from):
        return False
    if filters.due_date_to and task.due_date > ensure_utc(filters.due_date_to):
        return False

    return True


def filter_tasks(tasks: Iterable[Task], filters: TaskFilters, now: datetime) -> list[Task]:
    """Return the tasks matching every set filter, in their original order."""
    return [task for task in tasks if _matches(task, filters, now)]


def sort_tasks(
    tasks: Iterable[Task],
    sort_by: Union[TaskSortField, str] = TaskSortField.DUE_DATE,
    descending: bool = False
) -> list[Task]:
    """Return a sorted copy; ties keep their original order."""
    field = TaskSortField(sort_by)

    if field is TaskSortField.DUE_DATE:
        key = lambda task: task.due_date
    elif field is TaskSortField.PRIORITY:
        key = lambda task: PRIORITY_ORDER.get(task.priority, 0)
    elif field is TaskSortField.CREATED_AT:
        key = lambda task: task.created_at
    else:
        key = lambda task: task.title.casefold()

    return sorted(tasks, key=key, reverse=descending)


def calculate_stats(tasks: Iterable[Task], now: datetime) -> TaskStats:
    """Summary counts; overdue means pending and due before today started."""
    tasks = list(tasks)
    today = start_of_day(now)

    return TaskStats(
        total=len(tasks),
        pending=sum(1 for task in tasks if not task.completed),
        completed=sum(1 for task in tasks if task.completed),
        overdue=sum(1 for task in tasks if not task.completed and task.due_date < today),
        today=sum(1 for task in tasks if is_due_today(task, now)),
        this_week=sum(1 for task in tasks if is_due_this_week(task, now)),
        this_month=sum(1 for task in tasks if is_due_this_month(task, now)),
    )
