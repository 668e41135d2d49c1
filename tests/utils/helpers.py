"""Test helper functions."""

import json
import uuid
from datetime import datetime
from typing import Any, Dict, Optional
from unittest.mock import MagicMock

from src.models.task import Task, TaskCreationRequest
from src.utils.dates import utc_now


def mock_query_chain(data: Optional[list] = None) -> MagicMock:
    """Chainable mock of a supabase-py query builder ending in execute()."""
    query = MagicMock()
    for method in ("select", "insert", "update", "delete", "eq", "order", "is_", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data if data is not None else [])
    return query


def create_vercel_request(
    method: str = "POST",
    path: str = "/api/tasks/generate_recurring",
    query: Dict[str, str] = None,
) -> Dict[str, Any]:
    """Create a Vercel request object for testing."""
    return {
        "method": method,
        "path": path,
        "headers": {"content-type": "application/json"},
        "body": "",
        "query": query or {}
    }


class FakeTaskStore:
    """In-memory stand-in for ``src.services.supabase_client`` task operations."""

    def __init__(self, tasks: Optional[list[Task]] = None):
        self.tasks: dict[str, Task] = {task.id: task for task in tasks or []}
        self.created: list[Task] = []
        self.watermark_calls: list[tuple[str, datetime]] = []

    def add(self, task: Task) -> Task:
        self.tasks[task.id] = task
        return task

    def complete(self, task_id: str) -> Task:
        now = utc_now()
        task = self.tasks[task_id].model_copy(update={"completed": True, "completed_at": now, "updated_at": now})
        return self.add(task)

    async def list_tasks(self) -> list[Task]:
        return sorted(self.tasks.values(), key=lambda t: t.created_at, reverse=True)

    async def create_task(self, request: TaskCreationRequest) -> Task:
        now = utc_now()
        record = request.to_record()
        record.update({"id": str(uuid.uuid4()), "created_at": now, "updated_at": now})
        task = Task.model_validate(record)
        self.created.append(task)
        return self.add(task)

    async def update_task_watermark(self, template: Task, last_generated: datetime, compare_and_swap: bool = True) -> bool:
        self.watermark_calls.append((template.id, last_generated))
        current = self.tasks.get(template.id)
        if current is None:
            return False
        if compare_and_swap and current.updated_at != template.updated_at:
            return False
        rule = current.recurring.model_copy(update={"last_generated": last_generated})
        self.tasks[template.id] = current.model_copy(update={"recurring": rule, "updated_at": last_generated})
        return True


def parse_body(response: Dict[str, Any]) -> Dict[str, Any]:
    return json.loads(response["body"])
