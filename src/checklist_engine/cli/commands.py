# src/checklist_engine/cli/commands.py

from __future__ import annotations

import inspect
import logging
import shlex
from collections.abc import Callable
from typing import cast

from ..checklist import api
from ..checklist.due import OutstandingWindow
from ..checklist.models import DefinitionDraft, ReminderScope, RepeatRule, TaskInstance
from ..core.calendar import parse_date, parse_time_of_day, to_local_date_string
from ..core.errors import ChecklistError, ValidationError
from ..core.state import AppState

CommandEmitter = Callable[[str], None]
CommandHandler4 = Callable[[AppState, list[str], str | None, str | None], str]
CommandHandler5 = Callable[
    [AppState, list[str], str | None, str | None, CommandEmitter | None], str
]
CommandHandler = CommandHandler4 | CommandHandler5

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /today, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        user_id: str | None = None,
        room_id: str | None = None,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Arguments are shell-quoted, so titles with spaces can be passed as "Clean van".
        Engine errors are turned into a one-line reply.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError:
            parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 5

        try:
            if nparams >= 5:
                h5 = cast(CommandHandler5, handler)
                return h5(state, args, user_id, room_id, emit)

            h4 = cast(CommandHandler4, handler)
            return h4(state, args, user_id, room_id)
        except ChecklistError as e:
            logger.info("/%s rejected: %s", name, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _int_arg(raw: str, what: str) -> int:
    try:
        return int(raw.lstrip("#"))
    except ValueError as e:
        raise ValidationError(f"{what} must be a number, got {raw!r}") from e


def _display_name(state: AppState, user_id: str) -> str:
    names = getattr(state.settings, "user_names", None) or {}
    return names.get(user_id, user_id)


def _fmt_instance(inst: TaskInstance) -> str:
    box = "x" if inst.is_completed else " "
    line = f"#{inst.id} [{box}] {to_local_date_string(inst.scheduled_date)} {inst.title or 'Untitled'}"
    if inst.note:
        line += f"  note: {inst.note}"
    return line


def _parse_rule(raw: str) -> RepeatRule:
    """once | weekly:1,3 | after:3"""
    kind, _, rest = raw.partition(":")
    kind = kind.lower()
    if kind == "once":
        return RepeatRule.once()
    if kind == "weekly":
        days = [p for p in rest.replace(",", " ").split() if p]
        try:
            return RepeatRule.weekly_on_days(int(d) for d in days)
        except ValueError as e:
            raise ValidationError(f"weekdays must be numbers 0..6, got {rest!r}") from e
    if kind == "after":
        return RepeatRule.days_after_completion(_int_arg(rest or "0", "days after completion"))
    raise ValidationError(f"unknown repeat rule {raw!r} (use once, weekly:1,3 or after:3)")


def _split_options(args: list[str]) -> tuple[list[str], dict[str, str]]:
    positional: list[str] = []
    options: dict[str, str] = {}
    for a in args:
        if a.startswith("--"):
            key, _, value = a[2:].partition("=")
            options[key.lower()] = value
        else:
            positional.append(a)
    return positional, options


def cmd_help(
    state: AppState,
    args: list[str],
    user_id: str | None,
    room_id: str | None,
    emit: CommandEmitter | None = None,
) -> str:
    return registry.build_help()


def cmd_today(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    assignee = args[0] if args else state.operator.user_id
    due_set = api.list_today(state, assignee)
    if not due_set.combined:
        return f"No checklist items due today for {assignee}."
    lines = [f"Today for {assignee}:"]
    for inst in due_set.overdue:
        lines.append("  " + _fmt_instance(inst) + "  (overdue)")
    for inst in due_set.today:
        lines.append("  " + _fmt_instance(inst))
    return "\n".join(lines)


def cmd_upcoming(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    assignee = args[0] if args else state.operator.user_id
    items = api.list_upcoming(state, assignee)
    if not items:
        return f"Nothing upcoming for {assignee}."
    return "\n".join([f"Upcoming for {assignee}:"] + ["  " + _fmt_instance(i) for i in items])


def cmd_done(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    """
    /done <instance>           -> toggle completion
    /done <instance> <note...> -> complete with a note
    """
    if not args:
        return "Usage: /done <instance id> [note]"
    instance_id = _int_arg(args[0], "instance id")
    note = " ".join(args[1:]) or None
    result = api.toggle_complete(state, instance_id, note=note)
    if not result.completed:
        return f"Reopened #{result.instance.id} {result.instance.title or ''}".rstrip()
    msg = f"Completed #{result.instance.id} {result.instance.title or ''}".rstrip()
    if result.next_instance is not None:
        msg += f"\nNext due {to_local_date_string(result.next_instance.scheduled_date)} (#{result.next_instance.id})"
    return msg


def cmd_note(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if not args:
        return "Usage: /note <instance id> [text]  (no text clears the note)"
    inst = api.save_note(state, _int_arg(args[0], "instance id"), " ".join(args[1:]) or None)
    return f"Note saved on #{inst.id}." if inst.note else f"Note cleared on #{inst.id}."


def cmd_forward(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if len(args) < 3:
        return "Usage: /forward <instance id> <assignee> <title>"
    result = api.forward_instance(
        state,
        _int_arg(args[0], "instance id"),
        new_assignee_id=args[1],
        new_title=" ".join(args[2:]),
    )
    return (
        f"Forwarded #{result.removed_instance_id} to {result.instance.assignee_id} "
        f"as #{result.instance.id} on {to_local_date_string(result.instance.scheduled_date)}."
    )


def cmd_history(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    """
    /history [assignee] [months]
    Legend: x = completed, o = incomplete, . = not due
    """
    assignee = state.operator.user_id
    months = None
    for a in args:
        if a.isdigit():
            months = int(a)
        else:
            assignee = a

    grid = api.list_history(state, assignee, months_back=months)
    if grid.is_empty:
        return "No checklist history in this range."

    marks = {"completed": "x", "incomplete": "o", "not_due": "."}
    lines = [
        f"History for {assignee} {to_local_date_string(grid.start)}..{to_local_date_string(grid.end)} "
        f"({len(grid.dates)} dates, x=completed o=incomplete .=not due)"
    ]
    for row in grid.rows:
        cells = "".join(marks[row.status_on(d).value] for d in grid.dates)
        lines.append(f"  {row.definition_id:>4} {row.title[:24]:<24} {cells}")
    return "\n".join(lines)


def cmd_edit(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if not args:
        return f"History edit mode is {'ON' if state.edit_mode else 'OFF'}. Use /edit on or /edit off."
    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        api.set_edit_mode(state, True)
        return "History edit mode ON. Use /cycle <definition id> <date>."
    if arg in ("off", "0", "false", "no"):
        api.set_edit_mode(state, False)
        return "History edit mode OFF."
    return "Usage: /edit on or /edit off."


def cmd_cycle(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /cycle <definition id> <YYYY-MM-DD>"
    on = parse_date(args[1])
    status = api.cycle_history_cell(state, _int_arg(args[0], "definition id"), on)
    return f"{to_local_date_string(on)} -> {status.value}"


def cmd_add(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    """
    /add <assignee> <rule> <start> <title> [--until=DATE] [--show] [--notify=USER]
         [--notify-me] [--remind=HH:MM] [--overdue]
    rule: once | weekly:1,3 (0=Sunday) | after:N
    """
    positional, opts = _split_options(args)
    if len(positional) < 4:
        return (
            "Usage: /add <assignee> <once|weekly:1,3|after:N> <YYYY-MM-DD> <title> "
            "[--until=DATE] [--show] [--notify=USER] [--notify-me] [--remind=HH:MM] [--overdue]"
        )

    remind = opts.get("remind") or None
    draft = DefinitionDraft(
        title=" ".join(positional[3:]),
        assignee_id=positional[0],
        rule=_parse_rule(positional[1]),
        start_date=parse_date(positional[2]),
        end_date=parse_date(opts["until"]) if opts.get("until") else None,
        show_until_completed="show" in opts,
        notify_on_complete_user_id=opts.get("notify") or None,
        notify_creator_on_complete="notify-me" in opts,
        reminder_time=parse_time_of_day(remind) if remind else None,
        reminder_scope=ReminderScope.DUE_DATE_AND_OVERDUE if "overdue" in opts else None,
    )
    created = api.create_definition(state, draft)
    d = created.definition
    return f"Created definition #{d.id} '{d.title}' ({d.rule.describe()}), {created.instances_created} instance(s)."


def cmd_delete(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if not args:
        return "Usage: /delete <definition id>"
    definition_id = _int_arg(args[0], "definition id")
    removed = api.delete_definition(state, definition_id)
    return f"Deleted definition #{definition_id} and {removed} instance(s)."


def cmd_rename(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /rename <definition id> <title>"
    d = api.edit_definition(state, _int_arg(args[0], "definition id"), title=" ".join(args[1:]))
    return f"Definition #{d.id} renamed to '{d.title}'."


def cmd_reassign(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    if len(args) < 2:
        return "Usage: /reassign <definition id> <assignee>"
    d = api.edit_definition(state, _int_arg(args[0], "definition id"), assignee_id=args[1])
    return f"Definition #{d.id} now assigned to {d.assignee_id} (existing instances unchanged)."


def cmd_send(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    positional, opts = _split_options(args)
    if len(positional) < 2:
        return "Usage: /send <assignee> <title> [--no-show] [--notify-me]"
    sent = api.send_task(
        state,
        assignee_id=positional[0],
        title=" ".join(positional[1:]),
        show_until_completed="no-show" not in opts,
        notify_me="notify-me" in opts,
    )
    suffix = "" if sent.notified else " (notification not delivered)"
    return f"Sent '{sent.definition.title}' to {sent.definition.assignee_id} as #{sent.instance.id}{suffix}."


def cmd_outstanding(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    raw = (args[0] if args else OutstandingWindow.NEXT_DAY.value).lower()
    try:
        window = OutstandingWindow(raw)
    except ValueError:
        return "Usage: /outstanding [next_day|next_week|non_repeating]"

    groups = api.outstanding(state, window)
    if not groups:
        return f"Nothing outstanding ({window.value})."
    lines = [f"Outstanding ({window.value}):"]
    for g in groups:
        lines.append(f"  {_display_name(state, g.assignee_id)}: {g.count}")
        for inst in g.instances:
            lines.append("    " + _fmt_instance(inst))
    return "\n".join(lines)


def cmd_defs(state: AppState, args: list[str], user_id: str | None, room_id: str | None) -> str:
    defs = api.list_definitions(state, args[0] if args else None)
    if not defs:
        return "No checklist definitions."
    lines = ["Definitions:"]
    for d in defs:
        extra = []
        if d.end_date:
            extra.append(f"until {to_local_date_string(d.end_date)}")
        if d.show_until_completed:
            extra.append("show until completed")
        if d.reminder_time is not None:
            extra.append(f"remind {d.reminder_time.strftime('%H:%M')}")
        tail = f" [{', '.join(extra)}]" if extra else ""
        lines.append(
            f"  #{d.id} {d.title} -> {d.assignee_id}, {d.rule.describe()}, "
            f"from {to_local_date_string(d.start_date)}{tail}"
        )
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("today", cmd_today, help_text="Due today plus overdue: /today [assignee].")
registry.register("upcoming", cmd_upcoming, help_text="Next scheduled items: /upcoming [assignee].")
registry.register("done", cmd_done, help_text="Toggle completion: /done <instance> [note].")
registry.register("note", cmd_note, help_text="Set or clear a note: /note <instance> [text].")
registry.register("forward", cmd_forward, help_text="Redirect an item: /forward <instance> <assignee> <title>.")
registry.register("history", cmd_history, help_text="Completion grid: /history [assignee] [months].")
registry.register("edit", cmd_edit, help_text="History edit mode: /edit on | /edit off.")
registry.register("cycle", cmd_cycle, help_text="Correct a history cell: /cycle <definition> <date>.")
registry.register("add", cmd_add, help_text="Create a definition (see /add for options).")
registry.register("rename", cmd_rename, help_text="Rename a definition: /rename <definition> <title>.")
registry.register("reassign", cmd_reassign, help_text="Change assignee: /reassign <definition> <assignee>.")
registry.register("delete", cmd_delete, help_text="Delete a definition and its items: /delete <definition>.")
registry.register("send", cmd_send, help_text="Send a one-off task for today: /send <assignee> <title>.")
registry.register(
    "outstanding",
    cmd_outstanding,
    help_text="Open items per person: /outstanding [next_day|next_week|non_repeating].",
)
registry.register("defs", cmd_defs, help_text="List definitions: /defs [assignee].")
