"""Recurring task runner - one generation cycle: read, evaluate, persist, re-read."""

from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from src.models.evaluation import GenerationReport
from src.models.task import Task, TaskCreationRequest
from src.services import supabase_client as store
from src.services.recurrence_engine import evaluate
from src.utils.config import TaskConfig
from src.utils.dates import ensure_utc, utc_now
from src.utils.errors import NexusError, SupabaseError
from src.utils.logging import (
    correlation_context,
    get_correlation_id,
    get_structured_logger,
    log_timing,
    mask_assignee,
)

logger = get_structured_logger(__name__)

T = TypeVar("T")


async def _with_retries(operation: Callable[[], Awaitable[T]], action: str, task_id: str) -> T:
    attempts = max(TaskConfig.RECURRING_WRITE_RETRIES, 0) + 1
    attempt = 1
    while True:
        try:
            return await operation()
        except SupabaseError as e:
            if attempt >= attempts:
                raise
            logger.warning(
                f"Retrying {action}",
                task_id=task_id,
                attempt=attempt,
                max_attempts=attempts,
                error=str(e)
            )
            attempt += 1


async def persist_occurrence(
    template: Task,
    occurrence: TaskCreationRequest,
    watermark: datetime
) -> Optional[Task]:
    """
    Claim the due period for ``template`` and create its occurrence.

    The watermark is written first as a compare-and-swap; only the caller
    that wins the claim creates the task. Returns None when the claim was
    lost to a concurrent cycle.
    """
    claimed = await _with_retries(
        lambda: store.update_task_watermark(
            template, watermark, compare_and_swap=TaskConfig.RECURRING_WATERMARK_CAS
        ),
        "watermark update",
        template.id,
    )
    if not claimed:
        logger.info(
            "Recurring task already claimed by another cycle",
            task_id=template.id,
            watermark=watermark.isoformat()
        )
        return None

    try:
        created = await _with_retries(
            lambda: store.create_task(occurrence),
            "occurrence create",
            template.id,
        )
    except SupabaseError as e:
        logger.error(
            "Occurrence lost after watermark advanced",
            task_id=template.id,
            due_date=occurrence.due_date.isoformat(),
            error=str(e)
        )
        raise

    logger.info(
        "Created recurring occurrence",
        task_id=template.id,
        occurrence_id=created.id,
        due_date=occurrence.due_date.isoformat(),
        assigned_to=mask_assignee(occurrence.assigned_to)
    )
    return created


async def run_generation_cycle(now: Optional[datetime] = None) -> GenerationReport:
    """
    Run one recurring generation cycle against the task store.

    Each due template is persisted independently: a failure on one is
    recorded in the report and does not stop the others. The task list is
    re-read after any write so callers never work from patched local state.
    """
    now = ensure_utc(now) if now is not None else utc_now()

    with correlation_context(get_correlation_id()):
        with log_timing("recurring_generation_cycle", logger=logger, now=now.isoformat()):
            tasks = await store.list_tasks()
            result = evaluate(tasks, now)
            report = GenerationReport(evaluated_at=now, evaluated=len(tasks), tasks=tasks)

            if result.is_empty:
                return report

            templates = {task.id: task for task in tasks}
            for occurrence in result.to_create:
                template = templates[occurrence.source_task_id]
                watermark = result.to_update_watermark[template.id]
                try:
                    created = await persist_occurrence(template, occurrence, watermark)
                except NexusError as e:
                    report.failed[template.id] = str(e)
                    continue
                except Exception as e:
                    logger.exception(
                        "Unexpected error persisting recurring occurrence",
                        task_id=template.id,
                        error_type=type(e).__name__
                    )
                    report.failed[template.id] = str(e)
                    continue

                if created is None:
                    report.skipped.append(template.id)
                else:
                    report.created.append(created.id)

            report.tasks = await store.list_tasks()

            logger.info(
                "Recurring generation cycle finished",
                evaluated_count=report.evaluated,
                created_count=len(report.created),
                skipped_count=len(report.skipped),
                failed_count=len(report.failed)
            )
            return report
