# src/taskmate/cli/main.py

"""
CLI entrypoint (`taskmate` console script).

Start order: logging -> AppState -> saved histories -> reminder thread ->
console REPL (or wait for a signal when the console is disabled).
Shutdown always stops the reminder thread and saves histories.
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state, load_dialog_histories, save_dialog_histories
from ..config import get_settings
from ..connectors.console_connector import ConsoleReminderNotifier, run_console_loop
from ..connectors.reminder_runner import LoggingReminderNotifier, start_reminders_in_background
from ..core.ports import ReminderNotifier
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)

REMINDER_JOIN_TIMEOUT_SECONDS = 10.0


def _pick_notifier(settings) -> ReminderNotifier:
    # Without a console nobody reads stdout; reminders go to the log.
    if settings.console_enabled:
        return ConsoleReminderNotifier()
    return LoggingReminderNotifier()


def _install_signal_handlers(stop: threading.Event) -> None:
    def _handle(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, _handle)
        except (ValueError, OSError):
            logger.debug("Cannot install handler for %s", sig, exc_info=True)


def _shutdown(state: AppState) -> None:
    """Best-effort; nothing may escape from here."""
    try:
        save_dialog_histories(state)
    except Exception:
        logger.exception("Failed to save dialog histories.")

    try:
        state.task_store.close()
    except Exception:
        logger.debug("TaskStore close failed.", exc_info=True)


def run(settings) -> None:
    state = create_initial_state(settings=settings)

    restored = load_dialog_histories(state)
    if restored:
        logger.info("Restored %d conversation(s).", restored)

    runner = start_reminders_in_background(state, _pick_notifier(settings))
    stop = threading.Event()

    try:
        if settings.console_enabled:
            # input() handles Ctrl+C itself.
            run_console_loop(state)
        else:
            _install_signal_handlers(stop)
            logger.info("Console disabled; running reminders only. Press Ctrl+C to stop.")
            stop.wait()
    finally:
        if runner is not None:
            runner.stop()
            runner.join(timeout=REMINDER_JOIN_TIMEOUT_SECONDS)
        _shutdown(state)


def main() -> None:
    settings = get_settings()
    log_file = setup_logging(log_dir=settings.data_dir, console_level=settings.log_level)
    logger.info("Starting %s (log file: %s)", settings.app_name, log_file)

    run(settings)
    logger.info("Bye.")


if __name__ == "__main__":
    main()
