# tests/test_bootstrap.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

from checklist_engine.checklist.notify import LogNotifier
from checklist_engine.checklist.store import ChecklistStore
from checklist_engine.cli.bootstrap import create_initial_state

from .fakes import FakeNotifier


def _settings(tmp_path: Path) -> SimpleNamespace:
    return SimpleNamespace(
        data_dir=tmp_path / "data",
        db_path=tmp_path / "data" / "db" / "checklist.sqlite3",
        matrix_enabled=False,
        matrix_store_path=tmp_path / "data" / "matrix_store",
        operator_id="alice",
        operator_role="master_technician",
    )


def test_state_falls_back_to_log_notifier(tmp_path: Path) -> None:
    state = create_initial_state(settings=_settings(tmp_path))

    assert isinstance(state.store, ChecklistStore)
    assert isinstance(state.notifier, LogNotifier)
    assert state.operator.user_id == "alice"
    assert state.operator.can_edit_history()
    assert state.edit_mode is False
    assert (tmp_path / "data" / "db" / "checklist.sqlite3").exists()
    assert not (tmp_path / "data" / "matrix_store").exists()


def test_state_uses_given_notifier(tmp_path: Path) -> None:
    fake = FakeNotifier()
    state = create_initial_state(settings=_settings(tmp_path), notifier=fake)
    assert state.notifier is fake
