# tests/test_task_reminder.py

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import pytest

from taskmate.tasks.task_models import ReminderBatch, ReminderKind
from taskmate.tasks.task_reminder import collect_reminders, format_reminder, run_reminder_scheduler
from taskmate.tasks.task_store import TaskStore

from .fakes import FakeClock, RecordingNotifier

DAY = 24 * 3600.0


def test_collect_reminders_announces_once(task_store: TaskStore, clock: FakeClock) -> None:
    now = clock.now
    late = task_store.create_task(content="late", creator_id="u", due_at=now - 60)
    soon = task_store.create_task(content="soon", creator_id="u", due_at=now + 3600)
    task_store.create_task(content="far", creator_id="u", due_at=now + 3 * DAY)

    announced: set = set()
    batches = collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now)

    assert [b.kind for b in batches] == [ReminderKind.OVERDUE, ReminderKind.UPCOMING]
    assert [t.id for t in batches[0].tasks] == [late.id]
    assert [t.id for t in batches[1].tasks] == [soon.id]
    assert batches[1].window_seconds == DAY

    again = collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now)
    assert again == []


def test_moved_due_time_is_announced_again(task_store: TaskStore, clock: FakeClock) -> None:
    now = clock.now
    t = task_store.create_task(content="soon", creator_id="u", due_at=now + 3600)

    announced: set = set()
    assert len(collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now)) == 1

    task_store.update_fields(t.id, due_at=now + 7200)
    batches = collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now)
    assert [[x.id for x in b.tasks] for b in batches] == [[t.id]]


def test_completed_tasks_are_not_reminded(task_store: TaskStore, clock: FakeClock) -> None:
    t = task_store.create_task(content="late", creator_id="u", due_at=clock.now - 60)
    task_store.update_status(t.id, "completed")
    assert collect_reminders(task_store, upcoming_window_seconds=DAY, announced=set(), now_ts=clock.now) == []


def test_announced_keys_are_dropped_when_tasks_leave_the_lists(
    task_store: TaskStore, clock: FakeClock
) -> None:
    now = clock.now
    done = task_store.create_task(content="late", creator_id="u", due_at=now - 60)
    gone = task_store.create_task(content="soon", creator_id="u", due_at=now + 3600)
    kept = task_store.create_task(content="later", creator_id="u", due_at=now + 7200)

    announced: set = set()
    collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now)
    assert len(announced) == 3

    task_store.update_status(done.id, "completed")
    task_store.delete_task(gone.id)
    assert collect_reminders(task_store, upcoming_window_seconds=DAY, announced=announced, now_ts=now) == []
    assert announced == {(kept.id, ReminderKind.UPCOMING, kept.due_at)}


def test_format_reminder(task_store: TaskStore, clock: FakeClock) -> None:
    t = task_store.create_task(content="soon", creator_id="u", title="Dentist", due_at=clock.now + 3600)

    upcoming = format_reminder(ReminderBatch(kind=ReminderKind.UPCOMING, tasks=(t,), window_seconds=DAY))
    assert upcoming.startswith("⏰ 1 task(s) due within 24 hours:")
    assert f"Dentist (ID: {t.id})" in upcoming

    overdue = format_reminder(ReminderBatch(kind=ReminderKind.OVERDUE, tasks=(t,)))
    assert overdue.startswith("⚠️ 1 overdue task(s):")


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_scheduler_sends_batches_and_stops_on_cancel(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    now = time.time()
    store.create_task(content="late", creator_id="u", due_at=now - 60)
    store.create_task(content="soon", creator_id="u", due_at=now + 3600)

    notifier = RecordingNotifier()
    task = asyncio.create_task(run_reminder_scheduler(store, notifier, interval_seconds=0.5))

    await _wait_for(lambda: len(notifier.batches) >= 2)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert [b.kind for b in notifier.batches] == [ReminderKind.OVERDUE, ReminderKind.UPCOMING]


class FlakyNotifier:
    def __init__(self) -> None:
        self.attempts = 0
        self.delivered: list[ReminderBatch] = []

    async def send_reminder(self, batch: ReminderBatch) -> None:
        self.attempts += 1
        if self.attempts == 1:
            raise RuntimeError("room unavailable")
        self.delivered.append(batch)


@pytest.mark.asyncio
async def test_failed_send_is_retried_next_tick(tmp_path: Path) -> None:
    store = TaskStore(tmp_path / "tasks.sqlite3")
    t = store.create_task(content="late", creator_id="u", due_at=time.time() - 60)

    notifier = FlakyNotifier()
    task = asyncio.create_task(run_reminder_scheduler(store, notifier, interval_seconds=0.5))

    await _wait_for(lambda: len(notifier.delivered) >= 1)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert notifier.attempts == 2
    assert [x.id for x in notifier.delivered[0].tasks] == [t.id]
