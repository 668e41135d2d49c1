"""Recurring task generation endpoint (called on session start or via Vercel cron)."""

import json
import asyncio
import logging
from src.services.recurring_task_runner import run_generation_cycle
from src.utils.config import LoggingConfig
from src.utils.dates import parse_timestamp, utc_now
from src.utils.logging import correlation_context

LoggingConfig.setup_logging()
logger = logging.getLogger(__name__)


def _json_response(status_code: int, body: dict) -> dict:
    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(body)
    }


def handler(request):
    """
    Run one recurring generation cycle.

    An optional ``now`` query parameter (ISO 8601) replaces the clock, which
    lets operators re-run a cycle for a past instant. Future instants are
    rejected; a watermark written ahead of the clock stalls every template.
    """
    query_params = request.get("query", {}) or {}

    try:
        now = parse_timestamp(query_params.get("now"))
    except ValueError:
        return _json_response(400, {"error": f"Invalid 'now' timestamp: {query_params.get('now')}"})

    if now is not None and now > utc_now():
        logger.warning(f"Rejected future generation time: {now.isoformat()}")
        return _json_response(400, {"error": f"'now' cannot be in the future: {now.isoformat()}"})

    try:
        with correlation_context() as correlation_id:
            report = asyncio.run(run_generation_cycle(now))

        return _json_response(200, {
            "ok": True,
            "correlation_id": correlation_id,
            "evaluated_at": report.evaluated_at.isoformat(),
            "evaluated": report.evaluated,
            "created": len(report.created),
            "skipped": len(report.skipped),
            "failed": len(report.failed)
        })

    except Exception as e:
        logger.error(f"Error generating recurring tasks: {e}", exc_info=True)
        return _json_response(500, {"error": str(e)})
