# src/taskmate/tasks/task_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
import time
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path

from ..errors import CycleError, NotFoundError, ReferentialIntegrityError, ValidationError
from .task_models import Task, TaskStatus

logger = logging.getLogger(__name__)

TITLE_PREVIEW_CHARS = 50

# SQLite's default limit on bound parameters is 999 on older builds.
_IN_CHUNK = 500

# Statuses that take a task out of overdue and upcoming queries.
_TERMINAL_SQL = ",".join(f"'{s.value}'" for s in TaskStatus if s.is_terminal)


def derive_title(content: str) -> str:
    """Title used when the caller gave none: a truncated prefix of the content."""
    text = (content or "").strip()
    if len(text) > TITLE_PREVIEW_CHARS:
        return text[:TITLE_PREVIEW_CHARS] + "..."
    return text


class TaskStore:
    """
    SQLite task store with dependency edges.

    Schema:
    - tasks: one row per task (AUTOINCREMENT ids, never reused)
    - task_dependencies: edges task_id -> dependency_id

    Consistency:
    - the dependency relation is acyclic at all times
    - a task cannot be deleted while another task depends on it

    Thread-safety:
    - each method opens its own SQLite connection
    - all mutations run under one process-wide lock inside BEGIN IMMEDIATE,
      so validation (existence + cycle check) and the write are atomic
    - reads run inside a single deferred transaction (WAL), so a task and its
      edges always come from the same snapshot
    """

    def __init__(
        self,
        db_path: str | Path = "tasks.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._write_lock = threading.Lock()
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except sqlite3.Error:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # isolation_level=None: we issue BEGIN/COMMIT ourselves.
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")

    @contextlib.contextmanager
    def _write_tx(self) -> Iterator[sqlite3.Connection]:
        with self._write_lock:
            conn = self._get_conn()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()

    @contextlib.contextmanager
    def _read_tx(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            conn.execute("BEGIN")
            try:
                yield conn
            finally:
                conn.execute("COMMIT")
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._write_tx() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    content TEXT NOT NULL,
                    creator_id TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'pending',
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL,
                    due_at REAL,
                    completed_at REAL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS task_dependencies (
                    task_id INTEGER NOT NULL REFERENCES tasks(id) ON DELETE CASCADE,
                    dependency_id INTEGER NOT NULL REFERENCES tasks(id),
                    PRIMARY KEY (task_id, dependency_id)
                )
                """
            )

            # Migrations (safe): add missing columns.
            cols = {row["name"] for row in conn.execute("PRAGMA table_info(tasks)")}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                conn.execute(f"ALTER TABLE tasks ADD COLUMN {name} {decl}")
                logger.info("TaskStore migration: added column %s", name)

            add_col("updated_at", "REAL NOT NULL DEFAULT 0")
            add_col("due_at", "REAL")
            add_col("completed_at", "REAL")

            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status_due ON tasks(status, due_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_creator ON tasks(creator_id)")
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_task_deps_dependency ON task_dependencies(dependency_id)"
            )

    @staticmethod
    def _normalize_ids(ids: Iterable[int]) -> list[int]:
        out: set[int] = set()
        for raw in ids or ():
            if isinstance(raw, bool) or not isinstance(raw, int):
                raise ValidationError(f"invalid task id: {raw!r}")
            out.add(int(raw))
        return sorted(out)

    @staticmethod
    def _row_to_task(row: sqlite3.Row, dependencies: list[int]) -> Task:
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            content=str(row["content"] or ""),
            creator_id=str(row["creator_id"] or ""),
            status=TaskStatus.from_db(row["status"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            due_at=float(row["due_at"]) if row["due_at"] is not None else None,
            completed_at=float(row["completed_at"]) if row["completed_at"] is not None else None,
            dependencies=dependencies,
        )

    @staticmethod
    def _load_edges(conn: sqlite3.Connection, task_ids: list[int]) -> dict[int, list[int]]:
        edges: dict[int, list[int]] = {tid: [] for tid in task_ids}
        for i in range(0, len(task_ids), _IN_CHUNK):
            chunk = task_ids[i : i + _IN_CHUNK]
            placeholders = ",".join("?" for _ in chunk)
            cur = conn.execute(
                f"""
                SELECT task_id, dependency_id
                FROM task_dependencies
                WHERE task_id IN ({placeholders})
                ORDER BY dependency_id ASC
                """,
                chunk,
            )
            for row in cur:
                edges[int(row["task_id"])].append(int(row["dependency_id"]))
        return edges

    def _rows_to_tasks(self, conn: sqlite3.Connection, rows: list[sqlite3.Row]) -> list[Task]:
        edges = self._load_edges(conn, [int(r["id"]) for r in rows])
        return [self._row_to_task(r, edges[int(r["id"])]) for r in rows]

    @staticmethod
    def _fetch_row(conn: sqlite3.Connection, task_id: int) -> sqlite3.Row | None:
        return conn.execute("SELECT * FROM tasks WHERE id = ?", (int(task_id),)).fetchone()

    def _fetch_task(self, conn: sqlite3.Connection, task_id: int) -> Task | None:
        row = self._fetch_row(conn, task_id)
        if row is None:
            return None
        return self._rows_to_tasks(conn, [row])[0]

    def _reload(self, conn: sqlite3.Connection, task_id: int) -> Task:
        task = self._fetch_task(conn, task_id)
        if task is None:
            raise RuntimeError(f"task {task_id} vanished inside its own write transaction")
        return task

    def _require_row(self, conn: sqlite3.Connection, task_id: int) -> sqlite3.Row:
        row = self._fetch_row(conn, task_id)
        if row is None:
            raise NotFoundError(f"task {task_id} not found")
        return row

    @staticmethod
    def _missing_ids(conn: sqlite3.Connection, ids: list[int]) -> list[int]:
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        found = {
            int(r["id"])
            for r in conn.execute(f"SELECT id FROM tasks WHERE id IN ({placeholders})", ids)
        }
        return [i for i in ids if i not in found]

    @staticmethod
    def _would_create_cycle(
        conn: sqlite3.Connection,
        task_id: int | None,
        candidates: list[int],
    ) -> bool:
        """
        Iterative DFS from every candidate dependency over the stored edges.

        A cycle is reported when the walk reaches task_id (the task whose edge
        set is being replaced) or re-enters a node that is still on the
        current path. Fully explored nodes are skipped.
        """
        cache: dict[int, list[int]] = {}

        def deps_of(node: int) -> list[int]:
            if node not in cache:
                cur = conn.execute(
                    "SELECT dependency_id FROM task_dependencies WHERE task_id = ?", (node,)
                )
                cache[node] = [int(r["dependency_id"]) for r in cur]
            return cache[node]

        done: set[int] = set()
        for start in candidates:
            if task_id is not None and start == task_id:
                return True
            if start in done:
                continue

            on_path = {start}
            stack: list[tuple[int, Iterator[int]]] = [(start, iter(deps_of(start)))]
            while stack:
                node, it = stack[-1]
                nxt = next(it, None)
                if nxt is None:
                    stack.pop()
                    on_path.discard(node)
                    done.add(node)
                    continue
                if (task_id is not None and nxt == task_id) or nxt in on_path:
                    logger.debug("Cycle detected task_id=%s via %s -> %s", task_id, node, nxt)
                    return True
                if nxt in done:
                    continue
                on_path.add(nxt)
                stack.append((nxt, iter(deps_of(nxt))))

        return False

    @staticmethod
    def _insert_edges(conn: sqlite3.Connection, task_id: int, dependencies: list[int]) -> None:
        conn.executemany(
            "INSERT INTO task_dependencies(task_id, dependency_id) VALUES (?, ?)",
            [(int(task_id), int(d)) for d in dependencies],
        )

    # ---- public API: mutations ----

    def create_task(
        self,
        *,
        content: str,
        creator_id: str,
        title: str | None = None,
        due_at: float | None = None,
        dependencies: Iterable[int] = (),
    ) -> Task:
        content = (content or "").strip()
        creator_id = (creator_id or "").strip()
        if not content:
            raise ValidationError("task content is required")
        if not creator_id:
            raise ValidationError("creator id is required")

        title = (title or "").strip() or derive_title(content)
        deps = self._normalize_ids(dependencies)

        with self._write_tx() as conn:
            missing = self._missing_ids(conn, deps)
            if missing:
                raise NotFoundError(
                    "dependency task(s) not found: " + ", ".join(str(i) for i in missing)
                )
            if deps and self._would_create_cycle(conn, None, deps):
                raise CycleError("circular dependency detected among the given dependencies")

            now = self._clock()
            cur = conn.execute(
                """
                INSERT INTO tasks(
                    title, content, creator_id, status,
                    created_at, updated_at, due_at, completed_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, NULL)
                """,
                (
                    title,
                    content,
                    creator_id,
                    TaskStatus.PENDING.value,
                    now,
                    now,
                    float(due_at) if due_at is not None else None,
                ),
            )
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
            task_id = int(rowid)
            self._insert_edges(conn, task_id, deps)
            task = self._reload(conn, task_id)

        logger.info(
            "Task created id=%s creator=%s due_at=%s deps=%s",
            task.id,
            creator_id,
            due_at,
            deps,
        )
        return task

    def update_dependencies(self, task_id: int, dependencies: Iterable[int]) -> Task:
        """Replace the edge set of task_id."""
        deps = self._normalize_ids(dependencies)

        with self._write_tx() as conn:
            self._require_row(conn, task_id)
            missing = self._missing_ids(conn, deps)
            if missing:
                raise NotFoundError(
                    "dependency task(s) not found: " + ", ".join(str(i) for i in missing)
                )
            if self._would_create_cycle(conn, int(task_id), deps):
                raise CycleError(f"circular dependency: task {task_id} would depend on itself")

            conn.execute("DELETE FROM task_dependencies WHERE task_id = ?", (int(task_id),))
            self._insert_edges(conn, int(task_id), deps)
            conn.execute(
                "UPDATE tasks SET updated_at = ? WHERE id = ?", (self._clock(), int(task_id))
            )
            task = self._reload(conn, task_id)

        logger.info("Task %s dependencies -> %s", task_id, deps)
        return task

    def delete_task(self, task_id: int) -> None:
        with self._write_tx() as conn:
            self._require_row(conn, task_id)
            (dependents,) = conn.execute(
                "SELECT COUNT(*) FROM task_dependencies WHERE dependency_id = ?", (int(task_id),)
            ).fetchone()
            if int(dependents) > 0:
                raise ReferentialIntegrityError(
                    f"cannot delete task {task_id}: {int(dependents)} task(s) depend on it"
                )
            conn.execute("DELETE FROM task_dependencies WHERE task_id = ?", (int(task_id),))
            conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))

        logger.info("Task deleted id=%s", task_id)

    def update_status(self, task_id: int, status: TaskStatus | str) -> Task:
        new_status = TaskStatus.parse(status)

        with self._write_tx() as conn:
            self._require_row(conn, task_id)
            now = self._clock()
            if new_status == TaskStatus.COMPLETED:
                conn.execute(
                    "UPDATE tasks SET status = ?, completed_at = ?, updated_at = ? WHERE id = ?",
                    (new_status.value, now, now, int(task_id)),
                )
            else:
                conn.execute(
                    "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                    (new_status.value, now, int(task_id)),
                )
            task = self._reload(conn, task_id)

        logger.info("Task %s -> %s", task_id, new_status.value)
        return task

    def update_fields(
        self,
        task_id: int,
        *,
        title: str | None = None,
        content: str | None = None,
        due_at: float | None = None,
    ) -> Task:
        fields: list[str] = []
        params: list[object] = []

        if title is not None:
            title = title.strip()
            if not title:
                raise ValidationError("title cannot be empty")
            fields.append("title = ?")
            params.append(title)

        if content is not None:
            content = content.strip()
            if not content:
                raise ValidationError("task content cannot be empty")
            fields.append("content = ?")
            params.append(content)

        if due_at is not None:
            fields.append("due_at = ?")
            params.append(float(due_at))

        if not fields:
            raise ValidationError("no fields to update")

        with self._write_tx() as conn:
            self._require_row(conn, task_id)
            fields.append("updated_at = ?")
            params.append(self._clock())
            params.append(int(task_id))
            conn.execute(f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?", params)
            task = self._reload(conn, task_id)

        logger.info("Task %s updated fields=%s", task_id, [f.split(" ")[0] for f in fields[:-1]])
        return task

    # ---- public API: queries ----

    def get_task(self, task_id: int) -> Task | None:
        with self._read_tx() as conn:
            return self._fetch_task(conn, task_id)

    def require_task(self, task_id: int) -> Task:
        task = self.get_task(task_id)
        if task is None:
            raise NotFoundError(f"task {task_id} not found")
        return task

    def list_tasks(
        self,
        status: TaskStatus | str | None = None,
        creator_id: str | None = None,
    ) -> list[Task]:
        where: list[str] = []
        params: list[object] = []
        if status:
            where.append("status = ?")
            params.append(TaskStatus.parse(status).value)
        if creator_id:
            where.append("creator_id = ?")
            params.append(creator_id)

        sql = "SELECT * FROM tasks"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY created_at DESC, id DESC"

        with self._read_tx() as conn:
            rows = conn.execute(sql, params).fetchall()
            return self._rows_to_tasks(conn, rows)

    def count_tasks(self, status: TaskStatus | str | None = None) -> int:
        with self._read_tx() as conn:
            if status:
                cur = conn.execute(
                    "SELECT COUNT(*) FROM tasks WHERE status = ?", (TaskStatus.parse(status).value,)
                )
            else:
                cur = conn.execute("SELECT COUNT(*) FROM tasks")
            (n,) = cur.fetchone()
            return int(n)

    def overdue_tasks(self, now_ts: float | None = None) -> list[Task]:
        """Open tasks whose due time has passed."""
        now = self._clock() if now_ts is None else float(now_ts)
        with self._read_tx() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE status NOT IN ({_TERMINAL_SQL})
                  AND due_at IS NOT NULL
                  AND due_at < ?
                ORDER BY due_at ASC, id ASC
                """,
                (now,),
            ).fetchall()
            return self._rows_to_tasks(conn, rows)

    def upcoming_tasks(self, window_seconds: float, now_ts: float | None = None) -> list[Task]:
        """Open tasks due strictly between now and now + window."""
        now = self._clock() if now_ts is None else float(now_ts)
        with self._read_tx() as conn:
            rows = conn.execute(
                f"""
                SELECT *
                FROM tasks
                WHERE status NOT IN ({_TERMINAL_SQL})
                  AND due_at IS NOT NULL
                  AND due_at > ?
                  AND due_at < ?
                ORDER BY due_at ASC, id ASC
                """,
                (now, now + max(0.0, float(window_seconds))),
            ).fetchall()
            return self._rows_to_tasks(conn, rows)

    def search_tasks(self, keyword: str) -> list[Task]:
        """
        Case-insensitive substring match over title and content.

        Matching is done in Python: SQLite's LIKE only folds ASCII.
        """
        needle = (keyword or "").strip().casefold()
        tasks = self.list_tasks()
        if not needle:
            return tasks
        return [t for t in tasks if needle in t.title.casefold() or needle in t.content.casefold()]

    def dependency_titles(self, task: Task) -> dict[int, str]:
        """Titles of the task's dependencies (missing ones are omitted)."""
        if not task.dependencies:
            return {}
        ids = list(task.dependencies)
        placeholders = ",".join("?" for _ in ids)
        with self._read_tx() as conn:
            rows = conn.execute(
                f"SELECT id, title FROM tasks WHERE id IN ({placeholders})", ids
            ).fetchall()
        return {int(r["id"]): str(r["title"]) for r in rows}
