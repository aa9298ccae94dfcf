# src/taskmate/connectors/console_connector.py

from __future__ import annotations

import getpass
import logging
import sys
import threading
from collections.abc import Callable
from datetime import datetime

from ..core.state import AppState
from ..tasks.task_format import format_task_list
from ..tasks.task_models import ReminderBatch
from ..tasks.task_reminder import format_reminder

logger = logging.getLogger(__name__)

CONSOLE_CONVERSATION_ID = "console"
EXIT_COMMANDS = ("/exit", "/quit")

HELP_TEXT = (
    "Console commands:\n"
    "  /help   show this help\n"
    "  /tasks  print the task list (no model call)\n"
    "  /reset  clear this conversation\n"
    "  /exit   quit (also /quit, Ctrl+D)\n"
    "Anything else is sent to the assistant."
)

# The reminder thread prints here too.
_print_lock = threading.Lock()


def _now_str() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _echo_input(line: str) -> None:
    """Redraw the prompt line with a timestamp (TTY only)."""
    if not sys.stdout.isatty():
        return
    with _print_lock:
        sys.stdout.write("\033[1A\033[2K\r" + line + "\n")
        sys.stdout.flush()


def _say(text: str) -> None:
    with _print_lock:
        print(f"[{_now_str()}] {text}", flush=True)


def console_identity() -> str:
    """Conversation identity for the local user ("console:<login>")."""
    try:
        return f"console:{getpass.getuser()}"
    except (KeyError, OSError):
        return "console:user"


class ConsoleReminderNotifier:
    """Prints reminder batches between REPL turns."""

    async def send_reminder(self, batch: ReminderBatch) -> None:
        _say(f"[REMINDER]\n{format_reminder(batch)}\n")


def _local_commands(state: AppState) -> dict[str, Callable[[], str]]:
    def show_tasks() -> str:
        return format_task_list(state.task_store.list_tasks())

    def reset() -> str:
        state.sessions.reset(CONSOLE_CONVERSATION_ID)
        return "Conversation cleared."

    return {
        "/help": lambda: HELP_TEXT,
        "/tasks": show_tasks,
        "/reset": reset,
    }


def run_console_loop(state: AppState, *, identity: str | None = None) -> None:
    """Blocking REPL on the "console" conversation; returns on /exit, EOF or Ctrl+C."""
    user_id = identity or console_identity()
    app_name = str(getattr(state.settings, "app_name", "taskmate"))
    commands = _local_commands(state)

    logger.info("Console connector started identity=%s", user_id)
    _say("[CONSOLE] Type your messages. /help lists commands, /exit quits.\n")

    while True:
        try:
            user_input = input(">>> You: ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue
        _echo_input(f"[{_now_str()}] >>> You: {user_input}")

        lowered = user_input.lower()
        if lowered in EXIT_COMMANDS:
            logger.info("Console exit command received.")
            break

        local = commands.get(lowered)
        try:
            if local is not None:
                reply = local()
            else:
                reply = state.sessions.turn(CONSOLE_CONVERSATION_ID, user_id, user_input)
        except Exception:
            logger.exception("Console turn failed input=%r", user_input[:80])
            _say("Internal error while generating a reply.")
            continue

        _say(f"<<< {app_name}: {reply}\n")

    logger.info("Console connector finished.")
