# src/checklist_engine/connectors/matrix_notifier.py

"""
Matrix delivery for checklist notifications.

The engine is synchronous; matrix-nio is async. The notifier owns an event loop
in a background thread and hands each send to it with run_coroutine_threadsafe,
waiting for the result so dispatch() can log and record per notification.

Room routing:
- CHECKLIST_MATRIX_USER_ROOMS maps recipient ids to rooms (e.g. DM rooms)
- otherwise the first configured room is used
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass

from nio import AsyncClient, RoomSendError

from ..checklist.notify import Notification
from .matrix_client import create_matrix_client

logger = logging.getLogger(__name__)

SEND_TIMEOUT_SECONDS = 30.0


def render_message(notification: Notification) -> dict[str, str]:
    lines = [notification.title, notification.body]
    if notification.url:
        lines.append(notification.url)
    text = "\n".join(x for x in lines if x)
    html = f"<b>{notification.title}</b><br/>{notification.body}"
    return {
        "msgtype": "m.text",
        "body": text,
        "format": "org.matrix.custom.html",
        "formatted_body": html,
    }


def resolve_room(
    recipient_id: str,
    *,
    user_rooms: Mapping[str, str],
    default_rooms: list[str],
) -> str | None:
    room = (user_rooms.get(recipient_id) or "").strip()
    if room:
        return room
    for r in default_rooms:
        if r.strip():
            return r.strip()
    return None


async def _send_text(client: AsyncClient, *, room_id: str, content: dict[str, str]) -> None:
    resp = await client.room_send(
        room_id=room_id,
        message_type="m.room.message",
        content=content,
        ignore_unverified_devices=True,
    )
    if isinstance(resp, RoomSendError):
        raise RuntimeError(f"room_send failed room={room_id}: {resp.message}")


class MatrixNotifier:
    """Notifier port backed by a matrix-nio client living on `loop`."""

    def __init__(
        self,
        client: AsyncClient,
        loop: asyncio.AbstractEventLoop,
        *,
        user_rooms: Mapping[str, str] | None = None,
        default_rooms: list[str] | None = None,
        timeout: float = SEND_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self._loop = loop
        self._user_rooms = dict(user_rooms or {})
        self._default_rooms = list(default_rooms or [])
        self._timeout = float(timeout)

    def notify(self, notification: Notification) -> None:
        room_id = resolve_room(
            notification.recipient_id,
            user_rooms=self._user_rooms,
            default_rooms=self._default_rooms,
        )
        if room_id is None:
            raise LookupError(f"no Matrix room for recipient {notification.recipient_id}")

        fut = asyncio.run_coroutine_threadsafe(
            _send_text(self._client, room_id=room_id, content=render_message(notification)),
            self._loop,
        )
        fut.result(timeout=self._timeout)
        logger.debug("Matrix notification sent room=%s tag=%s", room_id, notification.tag)


@dataclass(slots=True)
class MatrixBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event
    notifier: MatrixNotifier

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal Matrix stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


async def _serve(client: AsyncClient, stop_event: asyncio.Event) -> None:
    """Keep the client alive until stop_event is set, then close it."""
    try:
        await stop_event.wait()
    finally:
        with contextlib.suppress(Exception):
            await client.close()
        logger.info("Matrix notifier stopped.")


def start_matrix_notifier_in_background(settings) -> MatrixBackgroundRunner | None:
    """
    Log in (or restore the session) and start the notifier loop in a daemon thread.

    Returns None when Matrix is disabled or the client cannot be created; callers
    then fall back to LogNotifier.
    """
    if not getattr(settings, "matrix_enabled", False):
        logger.info("Matrix notifier disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        try:
            client = loop.run_until_complete(create_matrix_client(settings))
        except Exception:
            logger.exception("Matrix client creation crashed.")
            client = None

        if client is not None:
            holder["loop"] = loop
            holder["stop_event"] = stop_event
            holder["client"] = client
        ready.set()

        if client is None:
            with contextlib.suppress(Exception):
                loop.close()
            return

        try:
            loop.run_until_complete(_serve(client, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="matrix-notifier", daemon=True)
    t.start()

    ready.wait(timeout=60.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")
    client = holder.get("client")

    if (
        not isinstance(loop, asyncio.AbstractEventLoop)
        or not isinstance(stop_event, asyncio.Event)
        or not isinstance(client, AsyncClient)
    ):
        logger.error("Matrix notifier did not initialize; notifications will only be logged.")
        return None

    notifier = MatrixNotifier(
        client,
        loop,
        user_rooms=getattr(settings, "matrix_user_rooms", {}) or {},
        default_rooms=list(getattr(settings, "matrix_rooms", []) or []),
    )
    logger.info("Matrix notifier started (user=%s).", getattr(settings, "matrix_user_id", ""))
    return MatrixBackgroundRunner(thread=t, loop=loop, stop_event=stop_event, notifier=notifier)
