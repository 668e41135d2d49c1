"""Recurrence evaluation and generation cycle results."""

from datetime import datetime
from pydantic import BaseModel, Field

from src.models.task import Task, TaskCreationRequest


class EvaluationResult(BaseModel):
    """Commands produced by one recurrence evaluation, applied by the caller."""
    to_create: list[TaskCreationRequest] = Field(default_factory=list)
    to_update_watermark: dict[str, datetime] = Field(
        default_factory=dict, description="Template id -> new lastGenerated"
    )

    @property
    def is_empty(self) -> bool:
        return not self.to_create and not self.to_update_watermark


class GenerationReport(BaseModel):
    """Outcome of one generation cycle against the store."""
    evaluated_at: datetime
    evaluated: int = Field(0, description="Number of tasks read from the store")
    created: list[str] = Field(default_factory=list, description="Ids of new occurrences")
    skipped: list[str] = Field(default_factory=list, description="Templates whose claim was lost")
    failed: dict[str, str] = Field(default_factory=dict, description="Template id -> error message")
    tasks: list[Task] = Field(default_factory=list, description="Task list re-read after writes")
