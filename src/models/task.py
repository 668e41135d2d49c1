"""Task models for the Supabase ``tasks`` table."""

from enum import Enum
from typing import Any, Optional
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.dates import ensure_utc


class TaskCategory(str, Enum):
    """Task classification shown on the board (does not drive recurrence)."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ONE_TIME = "one-time"


class TaskPriority(str, Enum):
    """Task priority values."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class RecurrenceType(str, Enum):
    """Calendar unit a recurrence rule advances by."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def _normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def _dedupe_tags(value: Optional[list[str]]) -> list[str]:
    if not value:
        return []
    return list(dict.fromkeys(tag for tag in value if tag))


class RecurrenceRule(BaseModel):
    """Recurrence rule stored as JSON in the ``recurring`` column (camelCase keys)."""
    model_config = ConfigDict(populate_by_name=True)

    type: str = Field(..., description="daily, weekly or monthly")
    interval: int = Field(default=1, description="Every N units")
    end_date: Optional[datetime] = Field(None, alias="endDate", description="No occurrences at or after this")
    last_generated: Optional[datetime] = Field(
        None, alias="lastGenerated", description="Watermark of the last generated occurrence"
    )

    @field_validator("end_date", "last_generated")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)

    def to_record(self) -> dict[str, Any]:
        """Serialize with the JSON keys the store uses."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Task(BaseModel):
    """Task row as returned by the store."""
    id: str = Field(..., description="Task ID assigned by the store")
    title: str = Field(..., description="Task title")
    description: str = Field(default="", description="Task description")
    category: TaskCategory = Field(default=TaskCategory.ONE_TIME, description="Board category")
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM, description="Task priority")
    due_date: datetime = Field(..., description="Target completion date")
    completed: bool = False
    completed_at: Optional[datetime] = None
    assigned_to: Optional[str] = Field(None, description="Free-text owner")
    tags: list[str] = Field(default_factory=list, description="Labels, order irrelevant")
    recurring: Optional[RecurrenceRule] = Field(None, description="Recurrence rule; absent for one-shot tasks")
    created_at: datetime
    updated_at: Optional[datetime] = None

    @field_validator("due_date", "completed_at", "created_at", "updated_at")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value: Any) -> list[str]:
        return _dedupe_tags(value)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> Any:
        # uuid columns come back as UUID objects from some clients
        return str(value) if value is not None else value

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, value: Any) -> Any:
        return value or ""

    @property
    def is_template(self) -> bool:
        return self.recurring is not None


class TaskCreationRequest(BaseModel):
    """Data for a new task; also what the recurrence engine emits for occurrences."""
    title: str
    description: str = ""
    category: TaskCategory = TaskCategory.ONE_TIME
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime
    completed: bool = False
    assigned_to: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    recurring: Optional[RecurrenceRule] = None
    source_task_id: Optional[str] = Field(
        None, exclude=True, description="Template this occurrence was generated from"
    )

    @field_validator("due_date")
    @classmethod
    def normalize_dates(cls, value: datetime) -> datetime:
        return _normalize_timestamp(value)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, value: Any) -> list[str]:
        return _dedupe_tags(value)

    def to_record(self) -> dict[str, Any]:
        """Row payload for an insert into the tasks table."""
        record = self.model_dump(mode="json", exclude={"recurring"})
        record["recurring"] = self.recurring.to_record() if self.recurring else None
        return record


class TaskUpdate(BaseModel):
    """Partial update; only fields that were explicitly set are written."""
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[TaskCategory] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[datetime] = None
    assigned_to: Optional[str] = None
    tags: Optional[list[str]] = None
    recurring: Optional[RecurrenceRule] = None
    completed: Optional[bool] = None

    @field_validator("due_date")
    @classmethod
    def normalize_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _normalize_timestamp(value)

    def to_record(self) -> dict[str, Any]:
        record = self.model_dump(mode="json", exclude_unset=True, exclude={"recurring"})
        if "recurring" in self.model_fields_set:
            record["recurring"] = self.recurring.to_record() if self.recurring else None
        return record
