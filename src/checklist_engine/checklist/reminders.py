# src/checklist_engine/checklist/reminders.py

"""
Scheduled reminders.

A small polling loop that:
- converts the clock to the configured local time zone,
- rounds the local time down to the reminder slot (e.g. 09:07 -> 09:00),
- claims the slot once in the store so parallel runners do not double-send,
- collects outstanding instances whose definition reminds at that slot,
- sends one summary notification per user via the injected Notifier.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, time
from zoneinfo import ZoneInfo

from ..core.calendar import format_time_of_day, round_down_to_slot, to_local_date_string, utc_now
from ..core.ports import ChecklistRepo, Notifier
from .models import ReminderScope
from .notify import DEFAULT_URL, TEMPLATE_SCHEDULED_REMINDER, Notification, dispatch

logger = logging.getLogger(__name__)

DEFAULT_TZ = "America/Chicago"
DEFAULT_SLOT_MINUTES = 15
REMINDER_TAG = "scheduled-reminder"
REMINDER_TITLE = "Task reminder"
SUMMARY_MAX_TITLES = 3


def reminder_body(titles: list[str]) -> str:
    n = len(titles)
    if n == 1:
        return f"You have 1 outstanding task: {titles[0]}"
    if n <= SUMMARY_MAX_TITLES:
        return f"You have {n} outstanding tasks: {', '.join(titles)}"
    shown = ", ".join(titles[:SUMMARY_MAX_TITLES])
    return f"You have {n} outstanding tasks: {shown} and {n - SUMMARY_MAX_TITLES} more"


def collect_reminders(
    repo: ChecklistRepo,
    *,
    today: date,
    at: time,
    slot_minutes: int = DEFAULT_SLOT_MINUTES,
    url: str = DEFAULT_URL,
) -> list[Notification]:
    """
    Reminder notifications due at local time `at` on local date `today`.

    Definitions match when their HH:MM reminder time equals `at` rounded down to the slot.
    due_date_only looks at instances dated today; due_date_and_overdue also at older open ones.
    """
    target = format_time_of_day(round_down_to_slot(at, slot_minutes))

    per_user: dict[str, list[str]] = {}
    for definition in repo.list_definitions_with_reminders():
        if definition.reminder_time is None:
            continue
        if format_time_of_day(definition.reminder_time) != target:
            continue

        scope = definition.reminder_scope
        if scope == ReminderScope.DUE_DATE_ONLY:
            only_on = True
        elif scope == ReminderScope.DUE_DATE_AND_OVERDUE:
            only_on = False
        else:
            continue

        open_instances = repo.list_open_for_definition(
            definition.id,
            assignee_id=definition.assignee_id,
            up_to=today,
            only_on=only_on,
        )
        if not open_instances:
            continue

        titles = per_user.setdefault(definition.assignee_id, [])
        if definition.title not in titles:
            titles.append(definition.title)

    out = [
        Notification(
            recipient_id=user_id,
            title=REMINDER_TITLE,
            body=reminder_body(titles),
            url=url,
            tag=REMINDER_TAG,
        )
        for user_id, titles in per_user.items()
    ]
    logger.debug("Reminders at %s %s: %d user(s)", today, target, len(out))
    return out


def slot_key(today: date, at: time, slot_minutes: int = DEFAULT_SLOT_MINUTES) -> str:
    return f"{to_local_date_string(today)}T{format_time_of_day(round_down_to_slot(at, slot_minutes))}"


def run_reminder_slot(
    repo: ChecklistRepo,
    notifier: Notifier,
    *,
    now: datetime,
    tz: str | ZoneInfo = DEFAULT_TZ,
    slot_minutes: int = DEFAULT_SLOT_MINUTES,
    url: str = DEFAULT_URL,
) -> int:
    """
    Handle the slot containing `now` once. Returns notifications sent
    (0 when another runner already claimed the slot).
    """
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    local = now.astimezone(zone)
    today = local.date()
    at = local.time().replace(second=0, microsecond=0)
    key = slot_key(today, at, slot_minutes)

    if not repo.try_claim_reminder_slot(key, now=now):
        logger.debug("Reminder slot %s already claimed", key)
        return 0

    notifications = collect_reminders(repo, today=today, at=at, slot_minutes=slot_minutes, url=url)
    if not notifications:
        return 0

    sent = dispatch(notifier, notifications, repo=repo, template=TEMPLATE_SCHEDULED_REMINDER)
    logger.info("Reminder slot %s: sent=%d users=%d", key, sent, len(notifications))
    return sent


async def run_reminder_scheduler(
        repo: ChecklistRepo,
        notifier: Notifier,
        *,
        tz: str | ZoneInfo = DEFAULT_TZ,
        interval_seconds: float = 30.0,
        slot_minutes: int = DEFAULT_SLOT_MINUTES,
        clock: Callable[[], datetime] = utc_now,
        url: str = DEFAULT_URL,
) -> None:
    """
    Simple polling scheduler.

    Every interval_seconds it reads the clock and, on entering a new slot,
    runs that slot once (claim, collect, dispatch). Failures are logged and
    the loop keeps going.

    To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))
    zone = tz if isinstance(tz, ZoneInfo) else ZoneInfo(tz)
    last_key: str | None = None

    while True:
        now = clock()
        local = now.astimezone(zone)
        key = slot_key(local.date(), local.time(), slot_minutes)

        if key != last_key:
            try:
                run_reminder_slot(repo, notifier, now=now, tz=zone, slot_minutes=slot_minutes, url=url)
                last_key = key
            except Exception:
                logger.exception("reminder slot failed key=%s", key)

        await asyncio.sleep(sleep_s)


@dataclass(slots=True)
class ReminderBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    task: asyncio.Task

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.task.cancel)
        except Exception:
            logger.debug("Failed to signal reminder stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_reminders_in_background(
    repo: ChecklistRepo,
    notifier: Notifier,
    *,
    tz: str | ZoneInfo = DEFAULT_TZ,
    interval_seconds: float = 30.0,
    slot_minutes: int = DEFAULT_SLOT_MINUTES,
    url: str = DEFAULT_URL,
) -> ReminderBackgroundRunner | None:
    """Run the reminder loop on its own event loop in a daemon thread."""
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        task = loop.create_task(
            run_reminder_scheduler(
                repo,
                notifier,
                tz=tz,
                interval_seconds=interval_seconds,
                slot_minutes=slot_minutes,
                url=url,
            )
        )
        holder["loop"] = loop
        holder["task"] = task
        ready.set()

        try:
            with contextlib.suppress(asyncio.CancelledError):
                loop.run_until_complete(task)
        finally:
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="reminders", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    task = holder.get("task")
    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(task, asyncio.Task):
        logger.error("Reminder thread did not initialize properly.")
        return None

    logger.info("Reminder scheduler started tz=%s slot=%dm", tz, slot_minutes)
    return ReminderBackgroundRunner(thread=t, loop=loop, task=task)
