"""Task list filter, sort and summary models."""

from enum import Enum
from typing import Optional
from datetime import datetime
from pydantic import BaseModel, Field


class TaskStatusFilter(str, Enum):
    """Status filter values for the task list."""
    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class TaskSortField(str, Enum):
    """Fields the task list can be sorted by."""
    DUE_DATE = "due_date"
    PRIORITY = "priority"
    CREATED_AT = "created_at"
    TITLE = "title"


class TaskFilters(BaseModel):
    """Task list filters. ``"all"`` disables the category, priority and status filters."""
    search: Optional[str] = Field(None, description="Matches title, description or tags")
    category: Optional[str] = Field(None, description="Category value or 'all'")
    priority: Optional[str] = Field(None, description="Priority value or 'all'")
    status: TaskStatusFilter = TaskStatusFilter.ALL
    assigned_to: Optional[str] = Field(None, description="Exact owner match")
    due_date_from: Optional[datetime] = None
    due_date_to: Optional[datetime] = None


class TaskStats(BaseModel):
    """Summary counts shown above the task list."""
    total: int = 0
    pending: int = 0
    completed: int = 0
    overdue: int = 0
    today: int = 0
    this_week: int = 0
    this_month: int = 0
