# tests/test_recurrence.py

from __future__ import annotations

from datetime import date, timedelta

from checklist_engine.checklist.models import RepeatRule, TaskDefinition
from checklist_engine.checklist.recurrence import (
    WEEKLY_MAX_ITERATIONS,
    expand,
    next_chained_date,
    weekly_stream,
)
from checklist_engine.core.calendar import weekday_index


def _definition(rule: RepeatRule, start: date, end: date | None = None) -> TaskDefinition:
    return TaskDefinition(
        id=1,
        title="Sweep shop",
        assignee_id="u1",
        created_by_id="mgr",
        rule=rule,
        start_date=start,
        end_date=end,
    )


def test_once_yields_start_date_only() -> None:
    occ = expand(_definition(RepeatRule.once(), date(2024, 1, 10)))
    assert [(o.scheduled_date, o.assignee_id) for o in occ] == [(date(2024, 1, 10), "u1")]


def test_days_after_completion_yields_only_first() -> None:
    occ = expand(_definition(RepeatRule.days_after_completion(3), date(2024, 2, 1)))
    assert [o.scheduled_date for o in occ] == [date(2024, 2, 1)]


def test_weekly_mon_wed_alternates() -> None:
    occ = expand(_definition(RepeatRule.weekly_on_days({1, 3}), date(2024, 1, 1)), 104)
    dates = [o.scheduled_date for o in occ]

    assert dates[:4] == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 8), date(2024, 1, 10)]
    assert len(dates) == 2 * 104
    assert dates == sorted(dates)
    assert {weekday_index(d) for d in dates} == {1, 3}


def test_weekly_stream_properties() -> None:
    start = date(2024, 1, 2)  # Tuesday
    for weekday in range(7):
        stream = list(weekly_stream(start, weekday, max_iterations=10))
        first = stream[0]
        assert first >= start
        assert weekday_index(first) == weekday
        assert first - start < timedelta(days=7)
        assert all(b - a == timedelta(days=7) for a, b in zip(stream, stream[1:]))


def test_weekly_respects_end_date() -> None:
    end = date(2024, 1, 29)
    occ = expand(_definition(RepeatRule.weekly_on_days({1}), date(2024, 1, 1), end))
    dates = [o.scheduled_date for o in occ]
    assert dates == [date(2024, 1, d) for d in (1, 8, 15, 22, 29)]
    assert all(d <= end for d in dates)


def test_weekly_bound_is_per_weekday() -> None:
    occ = expand(_definition(RepeatRule.weekly_on_days({0, 6}), date(2024, 1, 1)), 2)
    assert [o.scheduled_date for o in occ] == [
        date(2024, 1, 6),
        date(2024, 1, 7),
        date(2024, 1, 13),
        date(2024, 1, 14),
    ]


def test_default_bound() -> None:
    occ = expand(_definition(RepeatRule.weekly_on_days({5}), date(2024, 1, 1)))
    assert len(occ) == WEEKLY_MAX_ITERATIONS


def test_next_chained_date() -> None:
    d = _definition(RepeatRule.days_after_completion(3), date(2024, 2, 1))
    assert next_chained_date(d, date(2024, 2, 5)) == date(2024, 2, 8)

    bounded = _definition(RepeatRule.days_after_completion(3), date(2024, 2, 1), date(2024, 2, 7))
    assert next_chained_date(bounded, date(2024, 2, 5)) is None
    assert next_chained_date(bounded, date(2024, 2, 4)) == date(2024, 2, 7)

    weekly = _definition(RepeatRule.weekly_on_days({1}), date(2024, 2, 1))
    assert next_chained_date(weekly, date(2024, 2, 5)) is None
