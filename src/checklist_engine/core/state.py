# src/checklist_engine/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..checklist.models import Operator
from .events import ChangeFeed
from .ports import ChecklistRepo, Notifier


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    store: ChecklistRepo
    notifier: Notifier
    operator: Operator

    changes: ChangeFeed = field(default_factory=ChangeFeed)

    # History corrections are only accepted while this is on.
    edit_mode: bool = False
