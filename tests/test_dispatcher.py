# tests/test_dispatcher.py

from __future__ import annotations

import pytest

from taskmate.agent.dispatcher import Command, CommandDispatcher, Param, ParamKind
from taskmate.errors import CycleError, NotFoundError, ValidationError
from taskmate.tasks.task_store import TaskStore

TASK_COMMANDS = [
    "create_task",
    "list_tasks",
    "get_task_count",
    "get_task",
    "update_task_status",
    "update_task",
    "delete_task",
    "search_tasks",
    "get_overdue_tasks",
    "get_upcoming_tasks",
    "update_task_dependencies",
]


def test_catalog_lists_task_commands_in_order(dispatcher: CommandDispatcher) -> None:
    catalog = dispatcher.catalog()
    assert [entry["name"] for entry in catalog] == TASK_COMMANDS
    assert dispatcher.names() == TASK_COMMANDS

    create = catalog[0]
    assert create["description"]
    params = create["parameters"]
    assert params["type"] == "object"
    assert set(params["required"]) == {"content", "creator_id"}
    assert params["properties"]["dependencies"]["type"] == "array"
    assert params["properties"]["dependencies"]["items"] == {"type": "integer"}


def test_unknown_command(dispatcher: CommandDispatcher) -> None:
    with pytest.raises(NotFoundError) as exc:
        dispatcher.execute("launch_rocket", {})
    assert "unknown command" in str(exc.value)


def test_create_task_injects_identity(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    res = dispatcher.execute("create_task", {"content": "buy milk"}, identity="wx_alice")
    assert res.command == "create_task"
    assert "Task created" in res.content
    assert task_store.list_tasks()[0].creator_id == "wx_alice"

    dispatcher.execute("create_task", {"content": "buy eggs", "creator_id": ""}, identity="wx_bob")
    dispatcher.execute("create_task", {"content": "buy tea", "creator_id": "carol"}, identity="wx_bob")
    creators = sorted(t.creator_id for t in task_store.list_tasks())
    assert creators == ["carol", "wx_alice", "wx_bob"]


def test_create_task_without_identity_or_creator_fails(dispatcher: CommandDispatcher) -> None:
    with pytest.raises(ValidationError):
        dispatcher.execute("create_task", {"content": "x"})


def test_dependency_alias_is_normalized(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    a = task_store.create_task(content="a", creator_id="u")
    dispatcher.execute(
        "create_task",
        {"content": "b", "dependency_task_ids": [a.id]},
        identity="u",
    )
    newest = task_store.list_tasks()[0]
    assert newest.dependencies == [a.id]


def test_bad_list_elements_are_dropped_with_warnings(
    dispatcher: CommandDispatcher, task_store: TaskStore
) -> None:
    a = task_store.create_task(content="a", creator_id="u")
    b = task_store.create_task(content="b", creator_id="u")

    res = dispatcher.execute(
        "create_task",
        {"content": "c", "dependencies": [str(a.id), "x", float(b.id), True, None]},
        identity="u",
    )
    assert len(res.warnings) == 3
    assert all(w.startswith("dependencies:") for w in res.warnings)
    assert task_store.list_tasks()[0].dependencies == sorted([a.id, b.id])


def test_unknown_dependency_fails_the_create(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    with pytest.raises(NotFoundError):
        dispatcher.execute("create_task", {"content": "c", "dependencies": [42]}, identity="u")
    assert task_store.count_tasks() == 0


def test_required_scalars(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    with pytest.raises(ValidationError):
        dispatcher.execute("get_task", {})
    with pytest.raises(ValidationError):
        dispatcher.execute("get_task", {"task_id": "abc"})

    t = task_store.create_task(content="hello", creator_id="u", title="Greeting")
    res = dispatcher.execute("get_task", {"task_id": str(t.id)})
    assert "Greeting" in res.content
    assert f"ID: {t.id}" in res.content


def test_domain_errors_propagate(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    a = task_store.create_task(content="a", creator_id="u")
    with pytest.raises(NotFoundError):
        dispatcher.execute("get_task", {"task_id": 999})
    with pytest.raises(CycleError):
        dispatcher.execute("update_task_dependencies", {"task_id": a.id, "dependencies": [a.id]})
    with pytest.raises(ValidationError):
        dispatcher.execute("update_task_status", {"task_id": a.id, "status": "done-ish"})


def test_status_count_and_listing(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    assert dispatcher.execute("list_tasks", {}).content == "No tasks."

    a = task_store.create_task(content="a", creator_id="u", title="Alpha")
    task_store.create_task(content="b", creator_id="v", title="Beta")

    res = dispatcher.execute("update_task_status", {"task_id": a.id, "status": "completed"})
    assert "completed" in res.content
    assert task_store.require_task(a.id).completed_at is not None

    listing = dispatcher.execute("list_tasks", {"creator_id": "v"}).content
    assert "Beta" in listing and "Alpha" not in listing

    assert dispatcher.execute("get_task_count", {}).content.endswith(": 2")
    assert dispatcher.execute("get_task_count", {"status": "completed"}).content.endswith(": 1")


def test_search_accepts_query_alias(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    task_store.create_task(content="Renew passport", creator_id="u", title="Passport")
    task_store.create_task(content="Buy milk", creator_id="u", title="Milk")

    res = dispatcher.execute("search_tasks", {"query": "passport"})
    assert "Passport" in res.content and "Milk" not in res.content

    miss = dispatcher.execute("search_tasks", {"keyword": "dentist"})
    assert "No tasks matching" in miss.content


def test_upcoming_defaults_to_24_hours(dispatcher: CommandDispatcher) -> None:
    res = dispatcher.execute("get_upcoming_tasks", {})
    assert "24 hours" in res.content

    res = dispatcher.execute("get_upcoming_tasks", {"hours": "48"})
    assert "48 hours" in res.content


def test_unparseable_due_time_is_dropped(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    res = dispatcher.execute(
        "create_task",
        {"content": "call mom", "due_time": "when the moon is blue"},
        identity="u",
    )
    assert "not understood" in res.content
    assert task_store.list_tasks()[0].due_at is None


def test_update_with_only_unparseable_due_time_leaves_task_alone(
    dispatcher: CommandDispatcher, task_store: TaskStore
) -> None:
    t = task_store.create_task(content="draft", creator_id="u", due_at=1_900_000_000.0)

    res = dispatcher.execute("update_task", {"task_id": t.id, "due_time": "whenever-ish"})
    assert "not understood" in res.content
    assert "left unchanged" in res.content
    assert task_store.require_task(t.id).due_at == 1_900_000_000.0

    with pytest.raises(NotFoundError):
        dispatcher.execute("update_task", {"task_id": 999, "due_time": "whenever-ish"})


def test_update_dependencies_requires_the_list(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    a = task_store.create_task(content="a", creator_id="u")
    b = task_store.create_task(content="b", creator_id="u", dependencies=[a.id])

    for args in ({"task_id": b.id}, {"task_id": b.id, "dependency_ids": [a.id]}):
        with pytest.raises(ValidationError):
            dispatcher.execute("update_task_dependencies", args)
    assert task_store.require_task(b.id).dependencies == [a.id]

    dispatcher.execute("update_task_dependencies", {"task_id": b.id, "dependency_task_ids": []})
    assert task_store.require_task(b.id).dependencies == []


def test_update_task_and_delete(dispatcher: CommandDispatcher, task_store: TaskStore) -> None:
    t = task_store.create_task(content="draft", creator_id="u")
    res = dispatcher.execute(
        "update_task",
        {"task_id": t.id, "title": "Draft v2", "due_time": "2030-01-02 03:04:05"},
    )
    assert "Draft v2" in res.content
    assert "2030-01-02 03:04:05" in res.content

    res = dispatcher.execute("delete_task", {"task_id": t.id})
    assert f"Task {t.id} deleted" in res.content
    assert task_store.get_task(t.id) is None


def test_scalar_coercion_per_kind() -> None:
    seen: dict[str, object] = {}

    def handler(args: dict[str, object]) -> str:
        seen.update(args)
        return "ok"

    d = CommandDispatcher()
    d.register(
        Command(
            name="inspect",
            description="inspect",
            params=(
                Param("flag", ParamKind.BOOLEAN, "flag"),
                Param("ratio", ParamKind.NUMBER, "ratio"),
                Param("count", ParamKind.INTEGER, "count", required=True),
                Param("label", ParamKind.STRING, "label"),
                Param("ids", ParamKind.ID_LIST, "ids"),
            ),
            handler=handler,
        )
    )

    d.execute("inspect", {"flag": "yes", "ratio": "2.5", "count": 3.0, "label": 7, "ids": "1, 2,zz", "extra": 1})
    assert seen == {"flag": True, "ratio": 2.5, "count": 3, "label": "7", "ids": [1, 2]}

    with pytest.raises(ValidationError):
        d.execute("inspect", {"count": 1.5})
    with pytest.raises(ValidationError):
        d.execute("inspect", {"count": 1, "flag": "maybe"})
    with pytest.raises(ValidationError):
        d.execute("inspect", {"count": True})
