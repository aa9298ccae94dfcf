# src/taskmate/tasks/task_format.py

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

from .task_models import Task, TaskStatus

STATUS_LABELS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "pending",
    TaskStatus.IN_PROGRESS: "in progress",
    TaskStatus.COMPLETED: "completed",
    TaskStatus.CANCELLED: "cancelled",
}

STATUS_MARKERS: dict[TaskStatus, str] = {
    TaskStatus.PENDING: "⏳",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.COMPLETED: "✅",
    TaskStatus.CANCELLED: "❌",
}

NOT_SET = "not set"


def format_ts(ts: float | None, *, seconds: bool = False) -> str:
    """Render an epoch timestamp in local time."""
    if ts is None:
        return NOT_SET
    fmt = "%Y-%m-%d %H:%M:%S" if seconds else "%Y-%m-%d %H:%M"
    return datetime.fromtimestamp(float(ts)).strftime(fmt)


def status_label(status: TaskStatus) -> str:
    return STATUS_LABELS.get(status, str(status))


def format_task(task: Task, dependency_titles: Mapping[int, str] | None = None) -> str:
    """Multi-line summary of one task."""
    lines = [
        f"📋 Task: {task.title}",
        f"Status: {status_label(task.status)}",
        f"Creator: {task.creator_id}",
        f"Created: {format_ts(task.created_at, seconds=True)}",
        f"Due: {format_ts(task.due_at, seconds=True)}",
    ]

    if task.content:
        lines.append(f"Content: {task.content}")

    if task.dependencies:
        titles = dependency_titles or {}
        parts = []
        for dep_id in task.dependencies:
            title = titles.get(dep_id)
            parts.append(f"#{dep_id} ({title})" if title else f"#{dep_id}")
        lines.append("Depends on: " + ", ".join(parts))

    if task.completed_at is not None:
        lines.append(f"Completed: {format_ts(task.completed_at, seconds=True)}")

    lines.append(f"ID: {task.id}")
    return "\n".join(lines)


def format_task_list(tasks: Sequence[Task], header: str | None = None) -> str:
    """Numbered list; one entry per task."""
    if not tasks:
        return "No tasks."

    out: list[str] = [header or f"📋 Tasks ({len(tasks)}):", ""]
    for i, task in enumerate(tasks, start=1):
        marker = STATUS_MARKERS.get(task.status, "📝")
        out.append(f"{i}. {marker} {task.title} (ID: {task.id})")
        out.append(f"   Creator: {task.creator_id} | Due: {format_ts(task.due_at)}")
        if task.dependencies:
            out.append(f"   Depends on {len(task.dependencies)} task(s)")
    return "\n".join(out)
