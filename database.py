import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from models import Task, TaskStatus

logger = logging.getLogger(__name__)

DEFAULT_STATUS = TaskStatus.PENDING
DEFAULT_PRIORITY = 0

# Columns a caller may write; id and timestamps belong to the store.
WRITABLE_FIELDS = ("title", "description", "status", "priority", "due_date")

# SQLite INTEGER PRIMARY KEY range; ids outside it cannot be bound.
ROWID_MIN = -(2**63)
ROWID_MAX = 2**63 - 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_db_connection(db_path: Union[str, Path] = "todo.db") -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row  # dict-style rows
    return conn


def init_db(db_path: Union[str, Path] = "todo.db") -> None:
    """Create the tasks table if it does not exist yet."""
    conn = get_db_connection(db_path)
    try:
        conn.execute('''
        CREATE TABLE IF NOT EXISTS tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'in_progress', 'completed')),
            priority INTEGER NOT NULL DEFAULT 0,
            due_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            deleted_at TEXT
        )
        ''')
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_active_created "
            "ON tasks(deleted_at, created_at)"
        )
        conn.commit()
    finally:
        conn.close()


def _is_rowid(task_id: int) -> bool:
    return ROWID_MIN <= int(task_id) <= ROWID_MAX


def _to_db(value: Any) -> Any:
    if isinstance(value, TaskStatus):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class TaskStore:
    """
    SQLite task store.

    Soft-deleted rows keep their data and only get ``deleted_at`` set;
    every read except find_with_trashed filters them out.

    Each method opens its own connection, so one store can be shared
    between request threads. Concurrent updates are last-write-wins.
    """

    def __init__(
        self,
        db_path: Union[str, Path] = "todo.db",
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        init_db(self._db_path)
        logger.info("TaskStore ready db=%s", self._db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    def _get_conn(self) -> sqlite3.Connection:
        return get_db_connection(self._db_path)

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> Task:
        return Task(
            id=int(row["id"]),
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=int(row["priority"]),
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            deleted_at=datetime.fromisoformat(row["deleted_at"]) if row["deleted_at"] else None,
        )

    def _fetch(self, task_id: int, *, with_trashed: bool = False) -> Optional[Task]:
        if not _is_rowid(task_id):
            return None
        sql = "SELECT * FROM tasks WHERE id = ?"
        if not with_trashed:
            sql += " AND deleted_at IS NULL"
        conn = self._get_conn()
        try:
            row = conn.execute(sql, (int(task_id),)).fetchone()
        finally:
            conn.close()
        return self._row_to_task(row) if row else None

    # ---- public API ----

    def list_all(self) -> List[Task]:
        """Active tasks, newest first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE deleted_at IS NULL "
                "ORDER BY created_at DESC, id DESC"
            ).fetchall()
        finally:
            conn.close()
        return [self._row_to_task(r) for r in rows]

    def count(self, *, with_trashed: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM tasks"
        if not with_trashed:
            sql += " WHERE deleted_at IS NULL"
        conn = self._get_conn()
        try:
            (n,) = conn.execute(sql).fetchone()
        finally:
            conn.close()
        return int(n)

    def create(self, fields: Mapping[str, Any]) -> Task:
        values: Dict[str, Any] = {k: fields[k] for k in WRITABLE_FIELDS if k in fields}
        if values.get("status") is None:
            values["status"] = DEFAULT_STATUS
        if values.get("priority") is None:
            values["priority"] = DEFAULT_PRIORITY

        now = self._clock().isoformat()
        columns = list(values) + ["created_at", "updated_at"]
        params = [_to_db(v) for v in values.values()] + [now, now]

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"INSERT INTO tasks ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            conn.commit()
            task_id = cursor.lastrowid
        finally:
            conn.close()
        if task_id is None:
            raise RuntimeError("SQLite did not return lastrowid for tasks insert")

        logger.debug("Task created id=%s status=%s", task_id, values["status"])
        task = self._fetch(task_id)
        if task is None:
            raise RuntimeError(f"Task {task_id} vanished right after insert")
        return task

    def find(self, task_id: int) -> Optional[Task]:
        return self._fetch(task_id)

    def find_with_trashed(self, task_id: int) -> Optional[Task]:
        return self._fetch(task_id, with_trashed=True)

    def update(self, task_id: int, fields: Mapping[str, Any]) -> Optional[Task]:
        """Replace the given fields; None when the task is missing or deleted."""
        if not _is_rowid(task_id):
            return None
        values = {k: fields[k] for k in WRITABLE_FIELDS if k in fields}
        assignments = [f"{k} = ?" for k in values] + ["updated_at = ?"]
        params = [_to_db(v) for v in values.values()]
        params += [self._clock().isoformat(), int(task_id)]

        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                f"UPDATE tasks SET {', '.join(assignments)} "
                "WHERE id = ? AND deleted_at IS NULL",
                params,
            )
            conn.commit()
            updated = cursor.rowcount
        finally:
            conn.close()

        if updated == 0:
            return None
        logger.debug("Task updated id=%s fields=%s", task_id, sorted(values))
        return self._fetch(task_id)

    def soft_delete(self, task_id: int) -> bool:
        if not _is_rowid(task_id):
            return False
        conn = self._get_conn()
        try:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE tasks SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (self._clock().isoformat(), int(task_id)),
            )
            conn.commit()
            deleted = cursor.rowcount
        finally:
            conn.close()

        if deleted == 0:
            return False
        logger.debug("Task soft-deleted id=%s", task_id)
        return True
