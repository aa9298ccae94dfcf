# src/taskmate/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

from ..errors import ValidationError


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    Notes:
    - any status may move to any other; only the transition into "completed"
      has a side effect (completed_at is stamped).
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)

    @classmethod
    def parse(cls, raw: object) -> TaskStatus:
        """Strict decode for user/model input."""
        if isinstance(raw, TaskStatus):
            return raw
        value = str(raw or "").strip().lower()
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise ValidationError(f"invalid status: {raw!r} (expected one of: {allowed})") from None

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.PENDING
        try:
            return cls(raw)
        except ValueError:
            return cls.PENDING


@dataclass(slots=True)
class Task:
    id: int
    title: str
    content: str
    creator_id: str
    status: TaskStatus
    created_at: float
    updated_at: float
    due_at: float | None = None
    completed_at: float | None = None

    # Ids of prerequisite tasks (edges task -> dependency), ascending.
    dependencies: list[int] = field(default_factory=list)


class ReminderKind(StrEnum):
    OVERDUE = "overdue"
    UPCOMING = "upcoming"


@dataclass(slots=True, frozen=True)
class ReminderBatch:
    """Tasks the reminder loop wants to announce in one message."""

    kind: ReminderKind
    tasks: tuple[Task, ...]
    window_seconds: float | None = None
