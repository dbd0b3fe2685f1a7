# src/checklist_engine/checklist/api.py

"""
Operator-facing surface.

Thin wrappers that pull the store, notifier, change feed and settings out of
AppState and pass "today" explicitly into the engine. Connectors call these,
never the store directly.
"""

from __future__ import annotations

import logging
from datetime import date, datetime

from ..core.calendar import today_in, utc_now
from ..core.errors import PermissionDeniedError
from ..core.state import AppState
from . import completion, definitions, due, forward, history
from .models import DEFAULT_FORWARD_ROLES, DefinitionDraft, TaskDefinition, TaskInstance

logger = logging.getLogger(__name__)


def _setting(state: AppState, name: str, default):
    return getattr(state.settings, name, default)


def today(state: AppState, now: datetime | None = None) -> date:
    return today_in(_setting(state, "timezone", "America/Chicago"), now)


def _require_manager(state: AppState) -> None:
    roles = _setting(state, "manager_roles", None)
    allowed = state.operator.can_manage(roles) if roles is not None else state.operator.can_manage()
    if not allowed:
        raise PermissionDeniedError(f"role {state.operator.role!r} may not manage checklists")


def list_today(state: AppState, assignee_id: str | None = None, *, as_of: date | None = None) -> due.DueSet:
    return due.due_today(state.store, assignee_id or state.operator.user_id, as_of or today(state))


def list_upcoming(
    state: AppState,
    assignee_id: str | None = None,
    *,
    as_of: date | None = None,
) -> list[TaskInstance]:
    return due.upcoming(
        state.store,
        assignee_id or state.operator.user_id,
        as_of or today(state),
        limit=_setting(state, "upcoming_limit", due.UPCOMING_LIMIT),
    )


def list_history(
    state: AppState,
    assignee_id: str | None = None,
    *,
    months_back: int | None = None,
    as_of: date | None = None,
) -> history.HistoryGrid:
    months = months_back or _setting(state, "history_months_back", 6)
    start, end = history.history_window(as_of or today(state), months)
    return history.history_grid(
        state.store,
        assignee_id or state.operator.user_id,
        start,
        end,
        max_columns=_setting(state, "history_max_columns", history.HISTORY_MAX_COLUMNS),
    )


def toggle_complete(
    state: AppState,
    instance_id: int,
    *,
    note: str | None = None,
    now: datetime | None = None,
) -> completion.CompletionResult:
    ts = now or utc_now()
    settings = state.settings
    actor = state.operator.user_id
    actor_name = settings.display_name(actor) if hasattr(settings, "display_name") else actor
    return completion.toggle_complete(
        state.store,
        instance_id,
        acting_user_id=actor,
        now=ts,
        note=note,
        completed_on=today(state, ts),
        notifier=state.notifier,
        changes=state.changes,
        actor_name=actor_name,
        url=_setting(state, "notify_url", "/checklist"),
    )


def save_note(state: AppState, instance_id: int, note: str | None) -> TaskInstance:
    return completion.save_note(state.store, instance_id, note, changes=state.changes)


def forward_instance(
    state: AppState,
    instance_id: int,
    *,
    new_title: str,
    new_assignee_id: str,
) -> forward.ForwardResult:
    roles = _setting(state, "forward_roles", None)
    if not state.operator.can_forward(roles if roles is not None else DEFAULT_FORWARD_ROLES):
        raise PermissionDeniedError(f"role {state.operator.role!r} may not forward items")
    return forward.forward(
        state.store,
        instance_id,
        new_title=new_title,
        new_assignee_id=new_assignee_id,
        acting_user_id=state.operator.user_id,
        notifier=state.notifier,
        changes=state.changes,
        url=_setting(state, "notify_url", "/checklist"),
    )


def set_edit_mode(state: AppState, enabled: bool) -> bool:
    if enabled and not state.operator.can_edit_history(
        _setting(state, "history_editor_roles", None) or history.DEFAULT_HISTORY_EDITOR_ROLES
    ):
        raise PermissionDeniedError(f"role {state.operator.role!r} may not edit history")
    state.edit_mode = bool(enabled)
    logger.info("History edit mode %s by=%s", "on" if state.edit_mode else "off", state.operator.user_id)
    return state.edit_mode


def cycle_history_cell(
    state: AppState,
    definition_id: int,
    on: date,
    *,
    now: datetime | None = None,
):
    return history.cycle_history_cell(
        state.store,
        definition_id,
        on,
        operator=state.operator,
        edit_mode=state.edit_mode,
        now=now or utc_now(),
        roles=_setting(state, "history_editor_roles", None),
        changes=state.changes,
    )


def create_definition(state: AppState, draft: DefinitionDraft) -> definitions.CreatedDefinition:
    _require_manager(state)
    return definitions.create_definition(
        state.store,
        draft,
        created_by=state.operator.user_id,
        horizon_bound=_setting(state, "weekly_max_iterations", None),
        changes=state.changes,
    )


def edit_definition(state: AppState, definition_id: int, **fields) -> TaskDefinition:
    _require_manager(state)
    return definitions.edit_definition(state.store, definition_id, changes=state.changes, **fields)


def delete_definition(state: AppState, definition_id: int) -> int:
    _require_manager(state)
    return definitions.delete_definition(state.store, definition_id, changes=state.changes)


def list_definitions(state: AppState, assignee_id: str | None = None) -> list[TaskDefinition]:
    return state.store.list_definitions(assignee_id=assignee_id)


def send_task(
    state: AppState,
    *,
    title: str,
    assignee_id: str,
    show_until_completed: bool = True,
    notify_me: bool = False,
) -> definitions.SentTask:
    return definitions.send_task(
        state.store,
        title=title,
        assignee_id=assignee_id,
        created_by=state.operator.user_id,
        as_of=today(state),
        show_until_completed=show_until_completed,
        notify_creator_on_complete=notify_me,
        notifier=state.notifier,
        changes=state.changes,
        url=_setting(state, "notify_url", "/checklist"),
    )


def outstanding(
    state: AppState,
    window: due.OutstandingWindow = due.OutstandingWindow.NEXT_DAY,
) -> list[due.OutstandingGroup]:
    _require_manager(state)
    return due.outstanding_by_person(state.store, today(state), window)
