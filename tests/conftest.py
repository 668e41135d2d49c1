"""Shared pytest fixtures and configuration."""

import os
import pytest
from datetime import datetime, timezone

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("LOG_FORMAT", "text")

from tests.utils.factories import make_task, make_recurring_task


@pytest.fixture
def now():
    """Fixed evaluation time used across engine tests."""
    return datetime(2024, 1, 3, 0, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def daily_template():
    """Daily template created 2024-01-01 with no watermark yet."""
    return make_recurring_task(
        task_id="tpl-daily",
        recurrence_type="daily",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def one_shot_task():
    """Task without a recurrence rule."""
    return make_task(task_id="one-shot")
