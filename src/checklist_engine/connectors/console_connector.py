# src/checklist_engine/connectors/console_connector.py

from __future__ import annotations

import logging
import sys
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.events import ChangeEvent
from ..core.state import AppState

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except Exception:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (operator=%s role=%s).", state.operator.user_id, state.operator.role)
    _print_ts("[CONSOLE] Type /today to see your checklist. Use /help for commands. Use /exit to quit.\n")

    # Events that arrive between commands come from other threads sharing the feed.
    pending: list[ChangeEvent] = []

    def on_change(event: ChangeEvent) -> None:
        pending.append(event)

    unsubscribe = state.changes.subscribe(on_change)

    def emit(text: str) -> None:
        print(f"[{_ts_local()}] {text}", flush=True)

    try:
        while True:
            try:
                user_input = input(">>> ").strip()
                sent_ts = _ts_local()
                _rewrite_prev_line(f"[{sent_ts}] >>> {user_input}")
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            if user_input.lower() in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if pending:
                _print_ts(f"[checklist updated elsewhere: {len(pending)} change(s); re-run /today to refresh]")
                pending.clear()

            try:
                cmd_response = command_registry.handle(
                    state, user_input, user_id=state.operator.user_id, emit=emit
                )
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response is None:
                _print_ts("Commands start with '/'. Use /help to list them.")
                continue

            print(f"[{_ts_local()}] {cmd_response}")
            if pending:
                logger.debug("Command produced %d change event(s)", len(pending))
                pending.clear()
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
