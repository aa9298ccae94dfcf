# src/taskmate/agent/task_commands.py

"""
Task commands exposed to the model as tools.

Each handler receives already-coerced arguments, calls the TaskStore and
returns user-facing text. Domain errors propagate to the caller (the
orchestrator turns them into error results).
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from ..errors import ValidationError
from ..tasks.due_time import parse_due_time
from ..tasks.task_format import format_task, format_task_list, status_label
from ..tasks.task_models import TaskStatus
from ..tasks.task_store import TaskStore
from .dispatcher import Command, CommandArgs, CommandDispatcher, Param, ParamKind

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

DEPENDENCY_ALIASES = ("dependency_task_ids",)

_STATUS_HELP = "pending, in_progress, completed or cancelled"
_DUE_HELP = (
    "due time, preferably 'YYYY-MM-DD HH:MM:SS'; relative forms such as "
    "'tomorrow 18:00' are accepted. Leave empty if the user gave none"
)


def _task_id_param(description: str = "task id (number)") -> Param:
    return Param("task_id", ParamKind.INTEGER, description, required=True)


def build_task_dispatcher(task_store: TaskStore, clock: Clock | None = None) -> CommandDispatcher:
    """Register the task commands, in catalog order."""

    def parse_due(raw: str | None) -> tuple[float | None, str]:
        # Unparseable due times are dropped, not fatal.
        if not raw:
            return None, ""
        try:
            return parse_due_time(raw, now=clock() if clock else None).timestamp(), ""
        except ValidationError as e:
            logger.warning("Failed to parse due_time %r: %s; leaving it unset", raw, e)
            return None, f"\n(Note: due time {raw!r} was not understood and was left unchanged.)"

    def describe(task_id: int) -> str:
        task = task_store.require_task(task_id)
        return format_task(task, task_store.dependency_titles(task))

    # ---- handlers ----

    def create_task(args: CommandArgs) -> str:
        due_at, note = parse_due(args.get("due_time"))
        task = task_store.create_task(
            content=args["content"],
            creator_id=args["creator_id"],
            title=args.get("title"),
            due_at=due_at,
            dependencies=args.get("dependencies", []),
        )
        return f"✅ Task created!\n{format_task(task, task_store.dependency_titles(task))}{note}"

    def list_tasks(args: CommandArgs) -> str:
        creator_id = args.get("creator_id")
        tasks = task_store.list_tasks(status=args.get("status"), creator_id=creator_id)
        if not tasks:
            return "No tasks for this user." if creator_id else "No tasks."
        return format_task_list(tasks)

    def get_task_count(args: CommandArgs) -> str:
        status = args.get("status")
        n = task_store.count_tasks(status)
        label = status_label(TaskStatus.parse(status)) if status else "all"
        return f"📊 Tasks ({label}): {n}"

    def get_task(args: CommandArgs) -> str:
        return describe(args["task_id"])

    def update_task_status(args: CommandArgs) -> str:
        task = task_store.update_status(args["task_id"], args["status"])
        return f"✅ Task {task.id} status updated to: {status_label(task.status)}"

    def update_task(args: CommandArgs) -> str:
        due_at, note = parse_due(args.get("due_time"))
        if note and due_at is None and args.get("title") is None and args.get("content") is None:
            # Only an unreadable due time was given; nothing to write.
            return f"Task {args['task_id']} left unchanged.\n{describe(args['task_id'])}{note}"
        task = task_store.update_fields(
            args["task_id"],
            title=args.get("title"),
            content=args.get("content"),
            due_at=due_at,
        )
        return f"✅ Task updated!\n{format_task(task, task_store.dependency_titles(task))}{note}"

    def delete_task(args: CommandArgs) -> str:
        task_store.delete_task(args["task_id"])
        return f"Task {args['task_id']} deleted."

    def search_tasks(args: CommandArgs) -> str:
        keyword = args.get("keyword") or ""
        tasks = task_store.search_tasks(keyword)
        if keyword and not tasks:
            return f"No tasks matching {keyword!r}."
        return format_task_list(tasks)

    def get_overdue_tasks(args: CommandArgs) -> str:
        tasks = task_store.overdue_tasks()
        if not tasks:
            return "✅ No overdue tasks."
        return format_task_list(tasks, header=f"⚠️ {len(tasks)} overdue task(s):")

    def get_upcoming_tasks(args: CommandArgs) -> str:
        hours = args.get("hours", 24.0)
        if hours <= 0:
            raise ValidationError("hours must be positive")
        tasks = task_store.upcoming_tasks(hours * 3600.0)
        if not tasks:
            return f"✅ No tasks due within {hours:g} hours."
        return format_task_list(tasks, header=f"⏰ {len(tasks)} task(s) due within {hours:g} hours:")

    def update_task_dependencies(args: CommandArgs) -> str:
        task = task_store.update_dependencies(args["task_id"], args["dependencies"])
        return (
            "✅ Task dependencies updated!\n"
            f"{format_task(task, task_store.dependency_titles(task))}"
        )

    # ---- registration ----

    d = CommandDispatcher()
    d.register(
        Command(
            name="create_task",
            description=(
                "Create a new task. Use ONLY when the user explicitly asks to create, "
                "record or add a task. Sharing plans or ideas is normal conversation. "
                "The user's words are the task content; extract a title and due time from them."
            ),
            params=(
                Param("content", ParamKind.STRING, "task content (the user's own words)", required=True),
                Param("creator_id", ParamKind.STRING, "id of the current user", required=True),
                Param("title", ParamKind.STRING, "short title; derived from the content if empty"),
                Param("due_time", ParamKind.STRING, _DUE_HELP),
                Param(
                    "dependencies",
                    ParamKind.ID_LIST,
                    "ids of prerequisite tasks (optional)",
                    aliases=DEPENDENCY_ALIASES,
                ),
            ),
            handler=create_task,
            identity_param="creator_id",
        )
    )
    d.register(
        Command(
            name="list_tasks",
            description="List tasks, optionally filtered by status and/or creator.",
            params=(
                Param("status", ParamKind.STRING, f"status filter: {_STATUS_HELP}; empty for all"),
                Param("creator_id", ParamKind.STRING, "creator filter; empty for everyone's tasks"),
            ),
            handler=list_tasks,
        )
    )
    d.register(
        Command(
            name="get_task_count",
            description="Count tasks, optionally by status.",
            params=(Param("status", ParamKind.STRING, f"status filter: {_STATUS_HELP}; empty for all"),),
            handler=get_task_count,
        )
    )
    d.register(
        Command(
            name="get_task",
            description="Show the details of one task.",
            params=(_task_id_param(),),
            handler=get_task,
        )
    )
    d.register(
        Command(
            name="update_task_status",
            description="Change the status of a task. Use only when the user explicitly asks for it.",
            params=(
                _task_id_param(),
                Param("status", ParamKind.STRING, f"new status: {_STATUS_HELP}", required=True),
            ),
            handler=update_task_status,
        )
    )
    d.register(
        Command(
            name="update_task",
            description="Update the title, content or due time of a task.",
            params=(
                _task_id_param(),
                Param("title", ParamKind.STRING, "new title (optional)"),
                Param("content", ParamKind.STRING, "new content (optional)"),
                Param("due_time", ParamKind.STRING, _DUE_HELP),
            ),
            handler=update_task,
        )
    )
    d.register(
        Command(
            name="delete_task",
            description="Delete a task. Tasks that other tasks depend on cannot be deleted.",
            params=(_task_id_param(),),
            handler=delete_task,
        )
    )
    d.register(
        Command(
            name="search_tasks",
            description="Search tasks by keyword in title and content (case-insensitive).",
            params=(
                Param("keyword", ParamKind.STRING, "search keyword; empty lists all tasks", aliases=("query",)),
            ),
            handler=search_tasks,
        )
    )
    d.register(
        Command(
            name="get_overdue_tasks",
            description="List open tasks whose due time has passed.",
            params=(),
            handler=get_overdue_tasks,
        )
    )
    d.register(
        Command(
            name="get_upcoming_tasks",
            description="List open tasks due within the next N hours.",
            params=(Param("hours", ParamKind.NUMBER, "look-ahead window in hours (default 24)"),),
            handler=get_upcoming_tasks,
        )
    )
    d.register(
        Command(
            name="update_task_dependencies",
            description="Replace the prerequisite tasks of a task. Pass an empty list to clear them.",
            params=(
                _task_id_param(),
                Param(
                    "dependencies",
                    ParamKind.ID_LIST,
                    "ids of prerequisite tasks",
                    aliases=DEPENDENCY_ALIASES,
                    required=True,
                ),
            ),
            handler=update_task_dependencies,
        )
    )

    logger.debug("Task dispatcher ready commands=%s", d.names())
    return d
