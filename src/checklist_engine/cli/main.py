# src/checklist_engine/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- Matrix notifier in a background thread (optional),
- reminder scheduler in a background thread (optional),
- console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..checklist.reminders import ReminderBackgroundRunner, start_reminders_in_background
from ..cli.bootstrap import create_initial_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..connectors.matrix_notifier import MatrixBackgroundRunner, start_matrix_notifier_in_background
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    # keep noisy libs readable
    logging.getLogger("nio").setLevel(max(console_level, logging.INFO))
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logger.info("Starting %s...", settings.app_name)

    matrix_runner: MatrixBackgroundRunner | None = None
    if settings.matrix_enabled:
        matrix_runner = start_matrix_notifier_in_background(settings)

    state = create_initial_state(
        settings=settings,
        notifier=matrix_runner.notifier if matrix_runner is not None else None,
    )

    reminder_runner: ReminderBackgroundRunner | None = None
    if settings.reminders_enabled:
        reminder_runner = start_reminders_in_background(
            state.store,
            state.notifier,
            tz=settings.timezone,
            interval_seconds=settings.reminder_interval_seconds,
            slot_minutes=settings.reminder_slot_minutes,
            url=settings.notify_url,
        )

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except Exception:
        # Some platforms may not support SIGTERM, etc.
        logger.debug("Signal handlers not installed.", exc_info=True)

    try:
        if settings.console_enabled:
            run_console_loop(state)
            stop_main.set()
        else:
            logger.info("Console disabled. Running background services only. Press Ctrl+C to stop.")
            stop_main.wait()

    finally:
        if reminder_runner is not None:
            reminder_runner.stop()
            reminder_runner.join(timeout=10.0)

        if matrix_runner is not None:
            matrix_runner.stop()
            matrix_runner.join(timeout=10.0)

        try:
            close = getattr(state.store, "close", None)
            if close is not None:
                close()
        except Exception:
            logger.debug("Store close failed.", exc_info=True)

        logger.info("Bye.")


if __name__ == "__main__":
    main()
