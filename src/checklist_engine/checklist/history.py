# src/checklist_engine/checklist/history.py

"""
History grid and the privileged per-cell corrector.

A cell is one (definition, date) pair:
- completed: an instance exists with completed_at set
- incomplete: an instance exists without completed_at
- not_due: no instance exists

Each cycle moves a cell one step along incomplete -> not_due -> completed -> incomplete.
Callers re-read the grid after a cycle; no transient display state lives here.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime

from ..core.calendar import shift_months
from ..core.errors import PermissionDeniedError
from ..core.events import ChangeEvent, ChangeFeed, ChangeKind, publish
from ..core.ports import ChecklistRepo
from .models import DEFAULT_HISTORY_EDITOR_ROLES, CellStatus, HistoryRow, Operator, TaskInstance

logger = logging.getLogger(__name__)

HISTORY_MAX_COLUMNS = 60
HISTORY_MONTH_CHOICES = (3, 6, 12)

_NEXT_STATUS = {
    CellStatus.INCOMPLETE: CellStatus.NOT_DUE,
    CellStatus.NOT_DUE: CellStatus.COMPLETED,
    CellStatus.COMPLETED: CellStatus.INCOMPLETE,
}


def status_of(instance: TaskInstance | None) -> CellStatus:
    if instance is None:
        return CellStatus.NOT_DUE
    return CellStatus.COMPLETED if instance.is_completed else CellStatus.INCOMPLETE


def next_status(status: CellStatus) -> CellStatus:
    return _NEXT_STATUS[status]


def cell_status(repo: ChecklistRepo, definition_id: int, on: date) -> CellStatus:
    return status_of(repo.find_instance(definition_id, on))


def cycle_history_cell(
    repo: ChecklistRepo,
    definition_id: int,
    on: date,
    *,
    operator: Operator,
    edit_mode: bool,
    now: datetime,
    roles: Iterable[str] | None = None,
    changes: ChangeFeed | None = None,
) -> CellStatus:
    """Advance one cell and return its new status."""
    if not edit_mode:
        raise PermissionDeniedError("history can only be changed in edit mode")
    if not operator.can_edit_history(roles if roles is not None else DEFAULT_HISTORY_EDITOR_ROLES):
        raise PermissionDeniedError(f"role {operator.role!r} may not edit history")

    with repo.transaction():
        definition = repo.require_definition(definition_id)
        existing = repo.find_instance(definition_id, on)
        before = status_of(existing)

        if existing is None:
            repo.add_instance(
                definition_id=definition_id,
                scheduled_date=on,
                assignee_id=definition.assignee_id,
                completed_at=now,
                completed_by_id=operator.user_id,
                now=now,
            )
        elif existing.is_completed:
            # Same delete + insert primitive as a date change: the row is replaced.
            repo.delete_instance(existing.id)
            repo.add_instance(
                definition_id=definition_id,
                scheduled_date=on,
                assignee_id=existing.assignee_id,
                now=now,
            )
        else:
            repo.delete_instance(existing.id)

    after = next_status(before)
    logger.info(
        "History cell corrected definition=%s date=%s %s -> %s by=%s",
        definition_id,
        on,
        before.value,
        after.value,
        operator.user_id,
    )
    publish(changes, ChangeEvent(ChangeKind.HISTORY_CORRECTED, definition_id))
    return after


def history_window(as_of: date, months_back: int = 6) -> tuple[date, date]:
    """(start, end) for a history view looking `months_back` months before as_of."""
    return shift_months(as_of, -abs(int(months_back))), as_of


@dataclass(slots=True)
class HistoryGrid:
    assignee_id: str
    start: date
    end: date
    dates: list[date] = field(default_factory=list)
    rows: list[HistoryRow] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    def status(self, definition_id: int, on: date) -> CellStatus:
        for row in self.rows:
            if row.definition_id == definition_id:
                return row.status_on(on)
        return CellStatus.NOT_DUE


def history_grid(
    repo: ChecklistRepo,
    assignee_id: str,
    start: date,
    end: date,
    max_columns: int = HISTORY_MAX_COLUMNS,
) -> HistoryGrid:
    """
    Per-definition rows over the dates that have at least one instance.

    Only the most recent `max_columns` dates are kept as columns; rows keep every
    cell so status lookups outside the visible columns still work.
    """
    instances = repo.list_between(assignee_id, start, end)

    rows: dict[int, HistoryRow] = {}
    seen_dates: set[date] = set()
    for inst in instances:
        row = rows.get(inst.definition_id)
        if row is None:
            row = HistoryRow(definition_id=inst.definition_id, title=inst.title or "Untitled")
            rows[inst.definition_id] = row
        row.cells[inst.scheduled_date] = status_of(inst)
        seen_dates.add(inst.scheduled_date)

    dates = sorted(seen_dates)
    if max_columns > 0:
        dates = dates[-max_columns:]

    return HistoryGrid(
        assignee_id=assignee_id,
        start=start,
        end=end,
        dates=dates,
        rows=list(rows.values()),
    )
