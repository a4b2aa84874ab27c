"""Summary: SQLite storage implementation for TaskFlow.

Importance: Provides per-user task collections and a separate credential table.
Alternatives: Use a hosted document database or an ORM.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from taskflow.errors import StoreUnavailable
from taskflow.models import TASK_MUTABLE_FIELDS, ApiKey, Task


_TASK_COLUMNS = (
    "id",
    "title",
    "description",
    "due_date_time",
    "timezone",
    "calendar_sync",
    "calendar_event_id",
    "priority",
    "category",
    "tags",
    "reminder",
    "completed",
    "created_at",
    "updated_at",
)
_UPDATABLE_TASK_COLUMNS = frozenset(TASK_MUTABLE_FIELDS) | {"calendar_event_id", "updated_at"}


@dataclass(frozen=True)
class StoredCredentialRow:
    """Summary: Encoded credential record as it sits in the database.

    Importance: Keeps the storage layer unaware of token encoding.
    Alternatives: Decode tokens inside the store.
    """

    access_token: str | None
    refresh_token: str | None
    expiry: str | None
    scope: str | None
    token_type: str | None
    raw: str | None


class SqliteStore:
    """Summary: SQLite-backed storage for tasks, credentials, and API keys.

    Importance: Opens one connection per call so concurrent requests never share a handle.
    Alternatives: Keep a single long-lived connection guarded by a lock.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Summary: Create tables if they do not exist.

        Importance: Ensures the database is ready before the first request.
        Alternatives: Run migrations using a dedicated migration tool.
        """

        with self._connection() as connection:
            cursor = connection.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    user_uid TEXT NOT NULL,
                    id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    due_date_time TEXT,
                    timezone TEXT NOT NULL DEFAULT '',
                    calendar_sync INTEGER NOT NULL DEFAULT 0,
                    calendar_event_id TEXT,
                    priority TEXT NOT NULL,
                    category TEXT NOT NULL,
                    tags TEXT NOT NULL DEFAULT '[]',
                    reminder TEXT NOT NULL,
                    completed INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_uid, id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS calendar_credentials (
                    user_uid TEXT NOT NULL,
                    provider TEXT NOT NULL,
                    access_token TEXT,
                    refresh_token TEXT,
                    expiry TEXT,
                    scope TEXT,
                    token_type TEXT,
                    raw TEXT,
                    PRIMARY KEY (user_uid, provider)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS api_keys (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_uid TEXT NOT NULL,
                    token_hash TEXT NOT NULL UNIQUE,
                    label TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            connection.commit()

    def create_task(self, user_uid: str, task: Task) -> Task:
        """Summary: Insert a task under a fresh id and return the stored record.

        Importance: The generated id is what clients use for later patches and deletes.
        Alternatives: Let clients choose task ids.
        """

        task_id = uuid.uuid4().hex
        values = _task_values(task)
        values["id"] = task_id
        columns = ", ".join(("user_uid",) + _TASK_COLUMNS)
        placeholders = ", ".join("?" for _ in range(len(_TASK_COLUMNS) + 1))
        with self._connection() as connection:
            connection.execute(
                f"INSERT INTO tasks ({columns}) VALUES ({placeholders})",
                (user_uid, *[values[column] for column in _TASK_COLUMNS]),
            )
            connection.commit()
        stored = self.get_task(user_uid, task_id)
        if stored is None:
            raise StoreUnavailable(f"Task {task_id} vanished after insert")
        return stored

    def get_task(self, user_uid: str, task_id: str) -> Task | None:
        with self._connection() as connection:
            cursor = connection.execute(
                f"SELECT {', '.join(_TASK_COLUMNS)} FROM tasks WHERE user_uid = ? AND id = ?",
                (user_uid, task_id),
            )
            row = cursor.fetchone()
        return _row_to_task(row) if row else None

    def list_tasks(self, user_uid: str) -> list[Task]:
        """Summary: List a user's tasks, newest first."""

        with self._connection() as connection:
            cursor = connection.execute(
                f"""
                SELECT {', '.join(_TASK_COLUMNS)}
                FROM tasks
                WHERE user_uid = ?
                ORDER BY created_at DESC, rowid DESC
                """,
                (user_uid,),
            )
            rows = cursor.fetchall()
        return [_row_to_task(row) for row in rows]

    def update_task(self, user_uid: str, task_id: str, fields: dict[str, Any]) -> Task | None:
        """Summary: Merge fields into an existing task.

        Importance: Mirrors the document store's field-merge update semantics.
        Alternatives: Replace the whole row on every update.
        """

        unknown = set(fields) - _UPDATABLE_TASK_COLUMNS
        if unknown:
            raise ValueError(f"Unknown task fields: {sorted(unknown)}")
        if fields:
            encoded = {key: _encode_task_value(key, value) for key, value in fields.items()}
            assignments = ", ".join(f"{column} = ?" for column in encoded)
            with self._connection() as connection:
                connection.execute(
                    f"UPDATE tasks SET {assignments} WHERE user_uid = ? AND id = ?",
                    (*encoded.values(), user_uid, task_id),
                )
                connection.commit()
        return self.get_task(user_uid, task_id)

    def delete_task(self, user_uid: str, task_id: str) -> bool:
        with self._connection() as connection:
            cursor = connection.execute(
                "DELETE FROM tasks WHERE user_uid = ? AND id = ?",
                (user_uid, task_id),
            )
            connection.commit()
        return cursor.rowcount > 0

    def get_credential(self, user_uid: str, provider: str) -> StoredCredentialRow | None:
        with self._connection() as connection:
            cursor = connection.execute(
                """
                SELECT access_token, refresh_token, expiry, scope, token_type, raw
                FROM calendar_credentials
                WHERE user_uid = ? AND provider = ?
                """,
                (user_uid, provider),
            )
            row = cursor.fetchone()
        return StoredCredentialRow(*row) if row else None

    def update_credential(
        self,
        user_uid: str,
        provider: str,
        apply: Callable[[StoredCredentialRow | None], StoredCredentialRow],
    ) -> StoredCredentialRow:
        """Summary: Read, transform, and write a credential row in one transaction.

        Importance: Merges for the same user serialize on the database write lock.
        Alternatives: Read and write in separate connections and accept lost updates.
        """

        with self._connection() as connection:
            connection.isolation_level = None
            connection.execute("BEGIN IMMEDIATE")
            try:
                cursor = connection.execute(
                    """
                    SELECT access_token, refresh_token, expiry, scope, token_type, raw
                    FROM calendar_credentials
                    WHERE user_uid = ? AND provider = ?
                    """,
                    (user_uid, provider),
                )
                row = cursor.fetchone()
                updated = apply(StoredCredentialRow(*row) if row else None)
                connection.execute(
                    """
                    INSERT INTO calendar_credentials (
                        user_uid, provider, access_token, refresh_token, expiry, scope, token_type, raw
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(user_uid, provider) DO UPDATE SET
                        access_token = excluded.access_token,
                        refresh_token = excluded.refresh_token,
                        expiry = excluded.expiry,
                        scope = excluded.scope,
                        token_type = excluded.token_type,
                        raw = excluded.raw
                    """,
                    (
                        user_uid,
                        provider,
                        updated.access_token,
                        updated.refresh_token,
                        updated.expiry,
                        updated.scope,
                        updated.token_type,
                        updated.raw,
                    ),
                )
                connection.execute("COMMIT")
            except BaseException:
                connection.execute("ROLLBACK")
                raise
        return updated

    def create_api_key(
        self, user_uid: str, token_hash: str, label: str | None, created_at: str
    ) -> int:
        with self._connection() as connection:
            cursor = connection.execute(
                "INSERT INTO api_keys (user_uid, token_hash, label, created_at) VALUES (?, ?, ?, ?)",
                (user_uid, token_hash, label, created_at),
            )
            key_id = cursor.lastrowid
            connection.commit()
        return int(key_id)

    def get_user_uid_by_api_key(self, token_hash: str) -> str | None:
        with self._connection() as connection:
            cursor = connection.execute(
                "SELECT user_uid FROM api_keys WHERE token_hash = ?",
                (token_hash,),
            )
            row = cursor.fetchone()
        return str(row[0]) if row else None

    def list_api_keys(self, user_uid: str) -> list[ApiKey]:
        with self._connection() as connection:
            cursor = connection.execute(
                """
                SELECT id, user_uid, token_hash, label, created_at
                FROM api_keys
                WHERE user_uid = ?
                ORDER BY id
                """,
                (user_uid,),
            )
            rows = cursor.fetchall()
        return [ApiKey(*row) for row in rows]

    def delete_api_key(self, user_uid: str, key_id: int) -> bool:
        with self._connection() as connection:
            cursor = connection.execute(
                "DELETE FROM api_keys WHERE user_uid = ? AND id = ?",
                (user_uid, key_id),
            )
            connection.commit()
        return cursor.rowcount > 0

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Summary: Context manager for SQLite connections.

        Importance: Closes connections cleanly and reports database failures as StoreUnavailable.
        Alternatives: Let sqlite3 exceptions reach the HTTP layer.
        """

        try:
            connection = sqlite3.connect(self._db_path, timeout=10)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot open database {self._db_path}: {exc}") from exc
        try:
            yield connection
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Database operation failed: {exc}") from exc
        finally:
            connection.close()


def _task_values(task: Task) -> dict[str, Any]:
    return {column: _encode_task_value(column, getattr(task, column)) for column in _TASK_COLUMNS}


def _encode_task_value(column: str, value: Any) -> Any:
    if column in {"calendar_sync", "completed"}:
        return 1 if value else 0
    if column == "tags":
        return json.dumps(list(value or []))
    return value


def _row_to_task(row: tuple[Any, ...]) -> Task:
    data = dict(zip(_TASK_COLUMNS, row))
    data["calendar_sync"] = bool(data["calendar_sync"])
    data["completed"] = bool(data["completed"])
    data["tags"] = json.loads(data["tags"] or "[]")
    return Task(**data)