"""Tests for the recurrence engine."""

import pytest
from datetime import datetime, timedelta, timezone

from src.services.recurrence_engine import advance, evaluate, get_anchor, next_due_date
from src.utils.errors import RecurrenceError
from tests.utils.assertions import assert_occurrence_of
from tests.utils.factories import make_recurring_task

UTC = timezone.utc


def apply_watermarks(tasks, result):
    """Return copies of ``tasks`` with the result's watermark updates applied."""
    updated = []
    for task in tasks:
        watermark = result.to_update_watermark.get(task.id)
        if watermark is not None:
            rule = task.recurring.model_copy(update={"last_generated": watermark})
            task = task.model_copy(update={"recurring": rule})
        updated.append(task)
    return updated


@pytest.mark.unit
def test_advance_daily():
    anchor = datetime(2024, 1, 1, 9, 30, tzinfo=UTC)
    assert advance(anchor, "daily", 1) == datetime(2024, 1, 2, 9, 30, tzinfo=UTC)
    assert advance(anchor, "daily", 3) == datetime(2024, 1, 4, 9, 30, tzinfo=UTC)


@pytest.mark.unit
def test_advance_weekly_interval_scaling():
    """Every two weeks is exactly fourteen days."""
    anchor = datetime(2024, 3, 5, 8, 0, tzinfo=UTC)
    assert advance(anchor, "weekly", 2) == anchor + timedelta(days=14)


@pytest.mark.unit
@pytest.mark.parametrize("anchor,expected", [
    (datetime(2024, 1, 31, tzinfo=UTC), datetime(2024, 2, 29, tzinfo=UTC)),
    (datetime(2023, 1, 31, tzinfo=UTC), datetime(2023, 2, 28, tzinfo=UTC)),
    (datetime(2024, 3, 31, tzinfo=UTC), datetime(2024, 4, 30, tzinfo=UTC)),
    (datetime(2024, 1, 15, tzinfo=UTC), datetime(2024, 2, 15, tzinfo=UTC)),
])
def test_advance_monthly_clamps_to_last_day(anchor, expected):
    assert advance(anchor, "monthly", 1) == expected


@pytest.mark.unit
def test_advance_monthly_across_year_end():
    anchor = datetime(2023, 11, 30, 12, 0, tzinfo=UTC)
    assert advance(anchor, "monthly", 3) == datetime(2024, 2, 29, 12, 0, tzinfo=UTC)


@pytest.mark.unit
def test_advance_rejects_unknown_type():
    with pytest.raises(RecurrenceError):
        advance(datetime(2024, 1, 1, tzinfo=UTC), "yearly", 1)


@pytest.mark.unit
def test_advance_rejects_interval_below_one():
    with pytest.raises(RecurrenceError):
        advance(datetime(2024, 1, 1, tzinfo=UTC), "daily", 0)


@pytest.mark.unit
def test_anchor_prefers_watermark():
    watermark = datetime(2024, 2, 1, tzinfo=UTC)
    task = make_recurring_task(last_generated=watermark)
    assert get_anchor(task) == watermark


@pytest.mark.unit
def test_anchor_falls_back_to_created_at(daily_template):
    assert get_anchor(daily_template) == daily_template.created_at


@pytest.mark.unit
def test_daily_scenario(daily_template, now):
    """Created 2024-01-01, evaluated 2024-01-03: one occurrence due 2024-01-02."""
    result = evaluate([daily_template], now)

    assert len(result.to_create) == 1
    occurrence = result.to_create[0]
    assert occurrence.due_date == datetime(2024, 1, 2, tzinfo=UTC)
    assert_occurrence_of(occurrence, daily_template)
    assert result.to_update_watermark == {daily_template.id: now}

    # Watermark applied: anchor is now 2024-01-03, next due 2024-01-04 > now
    second = evaluate(apply_watermarks([daily_template], result), now)
    assert second.to_create == []
    assert second.to_update_watermark == {}


@pytest.mark.unit
def test_evaluate_is_deterministic_without_watermark_updates(daily_template, now):
    first = evaluate([daily_template], now)
    second = evaluate([daily_template], now)

    assert first == second
    assert len(first.to_create) == 1


@pytest.mark.unit
def test_at_most_one_occurrence_when_periods_were_missed(now):
    """Ten missed days still yield a single occurrence, due one period after the anchor."""
    template = make_recurring_task(
        task_id="tpl-late",
        created_at=now - timedelta(days=10),
    )
    result = evaluate([template], now)

    assert len(result.to_create) == 1
    assert result.to_create[0].due_date == now - timedelta(days=9)


@pytest.mark.unit
def test_not_yet_due(now):
    template = make_recurring_task(
        recurrence_type="weekly",
        created_at=now - timedelta(days=6),
    )
    result = evaluate([template], now)
    assert result.is_empty


@pytest.mark.unit
def test_due_exactly_at_now(now):
    template = make_recurring_task(created_at=now - timedelta(days=1))
    result = evaluate([template], now)
    assert len(result.to_create) == 1
    assert result.to_create[0].due_date == now


@pytest.mark.unit
def test_end_date_stops_generation(now):
    created = datetime(2024, 1, 1, tzinfo=UTC)
    template = make_recurring_task(
        created_at=created,
        end_date=datetime(2024, 1, 2, tzinfo=UTC),
    )

    # next_due == end_date is already past the end
    assert evaluate([template], now).is_empty
    assert evaluate([template], now + timedelta(days=3650)).is_empty


@pytest.mark.unit
def test_end_date_after_next_due_still_generates(now):
    template = make_recurring_task(
        created_at=datetime(2024, 1, 1, tzinfo=UTC),
        end_date=datetime(2024, 1, 2, 0, 0, 1, tzinfo=UTC),
    )
    assert len(evaluate([template], now).to_create) == 1


@pytest.mark.unit
def test_completed_template_never_generates(now):
    template = make_recurring_task(
        created_at=now - timedelta(days=400),
        last_generated=now - timedelta(days=300),
        completed=True,
        completed_at=(now - timedelta(days=299)).isoformat(),
    )
    assert evaluate([template], now).is_empty


@pytest.mark.unit
def test_one_shot_tasks_are_ignored(one_shot_task, now):
    assert evaluate([one_shot_task], now).is_empty


@pytest.mark.unit
def test_clock_skew_now_before_anchor(now):
    template = make_recurring_task(last_generated=now + timedelta(days=5))
    assert evaluate([template], now).is_empty


@pytest.mark.unit
def test_interval_below_one_is_treated_as_one(now):
    template = make_recurring_task(
        task_id="tpl-zero",
        interval=0,
        created_at=now - timedelta(days=2),
    )
    assert next_due_date(template) == now - timedelta(days=1)

    result = evaluate([template], now)
    assert len(result.to_create) == 1
    assert result.to_create[0].due_date == now - timedelta(days=1)


@pytest.mark.unit
def test_malformed_template_does_not_block_others(daily_template, now):
    broken = make_recurring_task(
        task_id="tpl-broken",
        recurrence_type="fortnightly",
        created_at=now - timedelta(days=30),
    )
    result = evaluate([broken, daily_template], now)

    assert [o.source_task_id for o in result.to_create] == [daily_template.id]
    assert "tpl-broken" not in result.to_update_watermark


@pytest.mark.unit
def test_multiple_templates_each_generate_once(now):
    templates = [
        make_recurring_task(task_id="d", recurrence_type="daily", created_at=now - timedelta(days=1)),
        make_recurring_task(task_id="w", recurrence_type="weekly", interval=2, created_at=now - timedelta(days=14)),
        make_recurring_task(task_id="m", recurrence_type="monthly", created_at=now - timedelta(days=40)),
        make_recurring_task(task_id="later", recurrence_type="monthly", created_at=now - timedelta(days=5)),
    ]
    result = evaluate(templates, now)

    assert sorted(o.source_task_id for o in result.to_create) == ["d", "m", "w"]
    assert set(result.to_update_watermark) == {"d", "m", "w"}


@pytest.mark.unit
def test_occurrence_keeps_template_rule_unchanged(now):
    watermark = now - timedelta(days=2)
    template = make_recurring_task(last_generated=watermark)
    occurrence = evaluate([template], now).to_create[0]

    assert occurrence.recurring == template.recurring
    assert occurrence.recurring.last_generated == watermark


@pytest.mark.unit
def test_evaluate_does_not_mutate_input(daily_template, now):
    before = daily_template.model_copy(deep=True)
    evaluate([daily_template], now)
    assert daily_template == before
