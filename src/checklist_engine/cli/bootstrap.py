# src/checklist_engine/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store, notifier, change feed).
"""

from __future__ import annotations

import logging

from ..checklist.models import Operator
from ..checklist.notify import LogNotifier
from ..checklist.store import ChecklistStore
from ..config import get_settings
from ..core.events import ChangeFeed
from ..core.ports import Notifier
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    if getattr(settings, "matrix_enabled", False):
        settings.matrix_store_path.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, notifier: Notifier | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings(). Without a notifier, notifications are logged.
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    state = AppState(
        settings=settings,
        store=ChecklistStore(settings.db_path),
        notifier=notifier if notifier is not None else LogNotifier(),
        operator=Operator(user_id=settings.operator_id, role=settings.operator_role or None),
        changes=ChangeFeed(),
    )
    logger.info(
        "State ready db=%s operator=%s role=%s notifier=%s",
        settings.db_path,
        state.operator.user_id,
        state.operator.role,
        type(state.notifier).__name__,
    )
    return state
