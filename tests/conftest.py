# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from checklist_engine.checklist.models import Operator
from checklist_engine.checklist.store import ChecklistStore
from checklist_engine.core.events import ChangeFeed
from checklist_engine.core.state import AppState

from .fakes import ChangeRecorder, FakeNotifier


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the api layer.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        db_path=tmp_path / "checklist.sqlite3",
        timezone="America/Chicago",
        weekly_max_iterations=104,
        upcoming_limit=30,
        history_max_columns=60,
        history_months_back=6,
        notify_url="/checklist",
        manager_roles=frozenset({"dev", "master_technician", "assistant"}),
        history_editor_roles=frozenset({"dev", "master_technician"}),
        forward_roles=frozenset({"dev"}),
        user_names={"u1": "Alice", "u2": "Bob"},
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> ChecklistStore:
    # Real SQLite: the uniqueness constraint and transactions are part of what we test.
    return ChecklistStore(settings.db_path)


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def changes() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture()
def recorder(changes: ChangeFeed) -> ChangeRecorder:
    rec = ChangeRecorder()
    changes.subscribe(rec)
    return rec


@pytest.fixture()
def state(settings: SimpleNamespace, store: ChecklistStore, notifier: FakeNotifier) -> AppState:
    return AppState(
        settings=settings,
        store=store,
        notifier=notifier,
        operator=Operator(user_id="mgr", role="dev"),
    )
