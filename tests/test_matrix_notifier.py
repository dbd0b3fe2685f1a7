# tests/test_matrix_notifier.py

from __future__ import annotations

import asyncio
import threading

import pytest

from checklist_engine.checklist.notify import Notification
from checklist_engine.connectors.matrix_notifier import MatrixNotifier, render_message, resolve_room


class FakeMatrixClient:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict]] = []

    async def room_send(self, room_id, message_type, content, ignore_unverified_devices=False):
        self.sent.append((room_id, content))
        return object()


@pytest.fixture()
def loop_thread():
    loop = asyncio.new_event_loop()
    t = threading.Thread(target=loop.run_forever, daemon=True)
    t.start()
    yield loop
    loop.call_soon_threadsafe(loop.stop)
    t.join(timeout=5.0)
    loop.close()


def test_resolve_room_prefers_user_mapping() -> None:
    rooms = {"u1": "!dm-alice:example.org"}
    assert resolve_room("u1", user_rooms=rooms, default_rooms=["!shop:example.org"]) == "!dm-alice:example.org"
    assert resolve_room("u2", user_rooms=rooms, default_rooms=[" ", "!shop:example.org"]) == "!shop:example.org"
    assert resolve_room("u2", user_rooms={}, default_rooms=[]) is None


def test_render_message() -> None:
    content = render_message(Notification("u1", "Task reminder", "You have 1 outstanding task: Sweep"))
    assert content["msgtype"] == "m.text"
    assert content["body"] == "Task reminder\nYou have 1 outstanding task: Sweep\n/checklist"
    assert content["formatted_body"] == "<b>Task reminder</b><br/>You have 1 outstanding task: Sweep"


def test_notify_sends_on_the_client_loop(loop_thread) -> None:
    client = FakeMatrixClient()
    notifier = MatrixNotifier(client, loop_thread, user_rooms={"u1": "!dm:example.org"}, timeout=5.0)

    notifier.notify(Notification("u1", "New task assigned", "You have a new task: Sweep"))

    ((room, content),) = client.sent
    assert room == "!dm:example.org"
    assert content["body"].startswith("New task assigned")


def test_notify_without_room_raises(loop_thread) -> None:
    notifier = MatrixNotifier(FakeMatrixClient(), loop_thread)
    with pytest.raises(LookupError):
        notifier.notify(Notification("u1", "t", "b"))
