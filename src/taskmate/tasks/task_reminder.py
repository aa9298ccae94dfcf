# src/taskmate/tasks/task_reminder.py

"""
Task reminder loop.

A small polling loop that:
- reads overdue tasks and tasks due within the upcoming window,
- announces each (task, kind, due time) once per process,
- hands batches to an injected notifier port.

Where a batch is delivered (console, chat room) belongs to the connector, not the loop.
"""

from __future__ import annotations

import asyncio
import logging
import time

from ..core.ports import ReminderNotifier, TaskReader
from .task_format import format_task_list
from .task_models import ReminderBatch, ReminderKind, Task

logger = logging.getLogger(__name__)

AnnouncedKey = tuple[int, ReminderKind, float | None]


def format_reminder(batch: ReminderBatch) -> str:
    n = len(batch.tasks)
    if batch.kind == ReminderKind.OVERDUE:
        header = f"⚠️ {n} overdue task(s):"
    else:
        hours = (batch.window_seconds or 0.0) / 3600.0
        header = f"⏰ {n} task(s) due within {hours:.0f} hours:"
    return format_task_list(list(batch.tasks), header=header)


def _fresh(tasks: list[Task], kind: ReminderKind, announced: set[AnnouncedKey]) -> list[Task]:
    out: list[Task] = []
    for t in tasks:
        key = (t.id, kind, t.due_at)
        if key in announced:
            continue
        announced.add(key)
        out.append(t)
    return out


def collect_reminders(
        task_store: TaskReader,
        *,
        upcoming_window_seconds: float,
        announced: set[AnnouncedKey],
        now_ts: float | None = None,
) -> list[ReminderBatch]:
    """
    One reminder pass.

    Returns batches for tasks not announced yet; `announced` is updated in place
    and only keeps keys for tasks still overdue or upcoming.
    A task whose due time is moved gets announced again.
    """
    now = time.time() if now_ts is None else float(now_ts)
    batches: list[ReminderBatch] = []

    overdue_now = task_store.overdue_tasks(now_ts=now)
    upcoming_now = task_store.upcoming_tasks(upcoming_window_seconds, now_ts=now)

    # Keys for tasks no longer in either list are dropped.
    live = {(t.id, ReminderKind.OVERDUE, t.due_at) for t in overdue_now}
    live.update((t.id, ReminderKind.UPCOMING, t.due_at) for t in upcoming_now)
    announced.intersection_update(live)

    overdue = _fresh(overdue_now, ReminderKind.OVERDUE, announced)
    if overdue:
        logger.info("Found %d overdue task(s)", len(overdue))
        batches.append(ReminderBatch(kind=ReminderKind.OVERDUE, tasks=tuple(overdue)))

    upcoming = _fresh(upcoming_now, ReminderKind.UPCOMING, announced)
    if upcoming:
        logger.info("Found %d upcoming task(s)", len(upcoming))
        batches.append(
            ReminderBatch(
                kind=ReminderKind.UPCOMING,
                tasks=tuple(upcoming),
                window_seconds=float(upcoming_window_seconds),
            )
        )

    return batches


async def run_reminder_scheduler(
        task_store: TaskReader,
        notifier: ReminderNotifier,
        *,
        interval_seconds: float = 3600.0,
        upcoming_window_seconds: float = 24 * 3600.0,
) -> None:
    """
    Simple polling reminder loop.

    Every interval_seconds:
    - collect overdue and upcoming batches (read-only, public query path)
    - send each non-empty batch via notifier.send_reminder(...)

    A failed pass is logged and retried on the next tick.
    To stop the loop, cancel the coroutine/task.
    """
    sleep_s = max(0.5, float(interval_seconds))
    announced: set[AnnouncedKey] = set()

    while True:
        try:
            batches = collect_reminders(
                task_store,
                upcoming_window_seconds=upcoming_window_seconds,
                announced=announced,
            )
        except Exception:
            logger.exception("reminder pass failed")
            batches = []

        for batch in batches:
            try:
                await notifier.send_reminder(batch)
            except Exception:
                logger.exception("reminder send failed kind=%s", batch.kind.value)
                # Allow a retry on the next tick.
                for t in batch.tasks:
                    announced.discard((t.id, batch.kind, t.due_at))

        await asyncio.sleep(sleep_s)
