# src/checklist_engine/checklist/recurrence.py

"""
Recurrence expansion.

- once: a single occurrence on start_date
- weekly_on_days: one independent weekly stream per requested weekday,
  each capped at `horizon_bound` steps because the rule never ends on its own
- days_after_completion: only the first occurrence; the rest are produced one at
  a time by the completion toggle (see completion.py)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, timedelta

from ..core.calendar import add_days, first_on_or_after
from .models import Occurrence, RepeatType, TaskDefinition

logger = logging.getLogger(__name__)

# ~2 years of weekly occurrences per weekday. Overridable via settings.
WEEKLY_MAX_ITERATIONS = 104


def weekly_stream(
    start: date,
    weekday: int,
    *,
    end_date: date | None = None,
    max_iterations: int = WEEKLY_MAX_ITERATIONS,
) -> Iterator[date]:
    d = first_on_or_after(start, weekday)
    for _ in range(max(0, int(max_iterations))):
        if end_date is not None and d > end_date:
            return
        yield d
        d += timedelta(days=7)


def expand(definition: TaskDefinition, horizon_bound: int | None = None) -> list[Occurrence]:
    """
    Dates on which an instance of `definition` should exist, ascending.

    Occurrences carry the definition's assignee at expansion time.
    """
    rule = definition.rule
    assignee = definition.assignee_id

    if rule.kind == RepeatType.WEEKLY_ON_DAYS:
        bound = WEEKLY_MAX_ITERATIONS if horizon_bound is None else int(horizon_bound)
        dates: set[date] = set()
        for weekday in sorted(rule.days):
            dates.update(
                weekly_stream(
                    definition.start_date,
                    weekday,
                    end_date=definition.end_date,
                    max_iterations=bound,
                )
            )
        out = [Occurrence(d, assignee) for d in sorted(dates)]
        logger.debug(
            "Expanded weekly definition id=%s days=%s -> %d occurrences",
            definition.id,
            sorted(rule.days),
            len(out),
        )
        return out

    # once / days_after_completion: start date only
    return [Occurrence(definition.start_date, assignee)]


def next_chained_date(definition: TaskDefinition, completed_date: date) -> date | None:
    """
    Next due date for a days_after_completion rule, counted from `completed_date`.
    None when the rule is not chained or the date is past end_date.
    """
    rule = definition.rule
    if rule.kind != RepeatType.DAYS_AFTER_COMPLETION or not rule.days_after:
        return None
    nxt = add_days(completed_date, rule.days_after)
    if definition.end_date is not None and nxt > definition.end_date:
        return None
    return nxt
