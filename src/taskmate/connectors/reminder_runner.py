# src/taskmate/connectors/reminder_runner.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.ports import ReminderNotifier
from ..core.state import AppState
from ..tasks.task_models import ReminderBatch
from ..tasks.task_reminder import format_reminder, run_reminder_scheduler

logger = logging.getLogger(__name__)


class LoggingReminderNotifier:
    """Used when no interactive transport is running."""

    async def send_reminder(self, batch: ReminderBatch) -> None:
        logger.warning("Reminder:\n%s", format_reminder(batch))


async def _run_reminders(state: AppState, notifier: ReminderNotifier, stop_event: asyncio.Event) -> None:
    settings = state.settings
    scheduler_task = asyncio.create_task(
        run_reminder_scheduler(
            state.task_store,
            notifier,
            interval_seconds=float(settings.reminder_interval_seconds),
            upcoming_window_seconds=float(settings.reminder_window_hours) * 3600.0,
        )
    )
    try:
        await stop_event.wait()
    finally:
        scheduler_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await scheduler_task
        logger.info("Reminder loop stopped.")


@dataclass
class ReminderBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except RuntimeError:
            logger.debug("Failed to signal reminder stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_reminders_in_background(
        state: AppState,
        notifier: ReminderNotifier,
) -> ReminderBackgroundRunner | None:
    """
    Start the reminder loop in a background thread with its own event loop.

    The console REPL is blocking (input()), so the async loop cannot share its thread.
    """
    if not getattr(state.settings, "reminders_enabled", True):
        logger.info("Reminders disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_reminders(state, notifier, stop_event))
        except Exception:
            logger.exception("Reminder thread crashed.")
        finally:
            loop.close()

    t = threading.Thread(target=runner, name="taskmate-reminders", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Reminder thread did not initialize properly.")
        return None

    logger.info("Reminder background thread started.")
    return ReminderBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
