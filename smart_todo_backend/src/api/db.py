from __future__ import annotations

import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Generator, List, Optional

from .models import TodoEntity
from .repositories import Repository
from .schemas import TodoCreate, TodoUpdate


@dataclass(frozen=True)
class _Cols:
    table: str = "todos"
    id: str = "id"
    owner: str = "owner"
    title: str = "title"
    description: str = "description"
    created_at: str = "created_at"
    due_date: str = "due_date"
    priority: str = "priority"
    categories: str = "categories"
    completed: str = "completed"
    updated_at: str = "updated_at"


_COLS = _Cols()


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.
    Every statement that touches an existing row filters on both id and owner.
    """

    def __init__(self, db_path: str, clock: Callable[[], datetime] = datetime.now) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._clock = clock
        self._init_db()

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {_COLS.table} (
                    {_COLS.id} TEXT PRIMARY KEY,
                    {_COLS.owner} TEXT NOT NULL,
                    {_COLS.title} TEXT NOT NULL,
                    {_COLS.description} TEXT NULL,
                    {_COLS.created_at} TEXT NOT NULL,
                    {_COLS.due_date} TEXT NULL,
                    {_COLS.priority} TEXT NULL CHECK ({_COLS.priority} IN ('high', 'medium', 'low')),
                    {_COLS.categories} TEXT NOT NULL DEFAULT '[]',
                    {_COLS.completed} INTEGER NOT NULL DEFAULT 0,
                    {_COLS.updated_at} TEXT NOT NULL
                )
                """
            )
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{_COLS.table}_owner_created_at "
                f"ON {_COLS.table}({_COLS.owner}, {_COLS.created_at})"
            )

    def _row_to_entity(self, row: sqlite3.Row) -> TodoEntity:
        def parse_dt(s: Optional[str]) -> Optional[datetime]:
            if s is None:
                return None
            return datetime.fromisoformat(s)

        return {
            "id": str(row[_COLS.id]),
            "owner": str(row[_COLS.owner]),
            "title": str(row[_COLS.title]),
            "description": row[_COLS.description],
            "created_at": parse_dt(row[_COLS.created_at]),  # type: ignore
            "due_date": parse_dt(row[_COLS.due_date]),
            "priority": row[_COLS.priority],
            "categories": json.loads(row[_COLS.categories] or "[]"),
            "completed": bool(row[_COLS.completed]),
            "updated_at": parse_dt(row[_COLS.updated_at]),  # type: ignore
        }

    def _select_owned(self, conn: sqlite3.Connection, owner: str, todo_id: str) -> Optional[sqlite3.Row]:
        return conn.execute(
            f"SELECT * FROM {_COLS.table} WHERE {_COLS.id} = ? AND {_COLS.owner} = ?",
            (todo_id, owner),
        ).fetchone()

    def create(self, owner: str, data: TodoCreate) -> TodoEntity:
        now = self._clock().isoformat()
        new_id = uuid.uuid4().hex
        with self._conn() as conn:
            conn.execute(
                f"""
                INSERT INTO {_COLS.table} ({_COLS.id}, {_COLS.owner}, {_COLS.title}, {_COLS.description},
                    {_COLS.created_at}, {_COLS.due_date}, {_COLS.priority}, {_COLS.categories},
                    {_COLS.completed}, {_COLS.updated_at})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    new_id,
                    owner,
                    data.title,
                    data.description,
                    now,
                    _dt(data.due_date),
                    data.priority,
                    json.dumps(data.categories, ensure_ascii=False),
                    1 if data.completed else 0,
                    now,
                ),
            )
            row = self._select_owned(conn, owner, new_id)
            assert row is not None
            return self._row_to_entity(row)

    def get(self, owner: str, todo_id: str) -> Optional[TodoEntity]:
        with self._conn() as conn:
            row = self._select_owned(conn, owner, todo_id)
            return self._row_to_entity(row) if row else None

    def update(self, owner: str, todo_id: str, data: TodoUpdate) -> Optional[TodoEntity]:
        sent = data.model_fields_set
        assignments: List[str] = []
        params: List[Any] = []

        if "title" in sent and data.title is not None:
            assignments.append(f"{_COLS.title} = ?")
            params.append(data.title)
        if "description" in sent:
            assignments.append(f"{_COLS.description} = ?")
            params.append(data.description)
        if "completed" in sent and data.completed is not None:
            assignments.append(f"{_COLS.completed} = ?")
            params.append(1 if data.completed else 0)
        if "due_date" in sent:
            assignments.append(f"{_COLS.due_date} = ?")
            params.append(_dt(data.due_date))
        if "priority" in sent:
            assignments.append(f"{_COLS.priority} = ?")
            params.append(data.priority)
        if "categories" in sent:
            assignments.append(f"{_COLS.categories} = ?")
            params.append(json.dumps(data.categories or [], ensure_ascii=False))

        assignments.append(f"{_COLS.updated_at} = ?")
        params.append(self._clock().isoformat())

        with self._conn() as conn:
            cur = conn.execute(
                f"""
                UPDATE {_COLS.table}
                SET {', '.join(assignments)}
                WHERE {_COLS.id} = ? AND {_COLS.owner} = ?
                """,
                [*params, todo_id, owner],
            )
            if cur.rowcount == 0:
                return None
            row = self._select_owned(conn, owner, todo_id)
            assert row is not None
            return self._row_to_entity(row)

    def delete(self, owner: str, todo_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute(
                f"DELETE FROM {_COLS.table} WHERE {_COLS.id} = ? AND {_COLS.owner} = ?",
                (todo_id, owner),
            )
            return cur.rowcount > 0

    def list(self, owner: str) -> List[TodoEntity]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM {_COLS.table}
                WHERE {_COLS.owner} = ?
                ORDER BY {_COLS.created_at} DESC
                """,
                (owner,),
            ).fetchall()
            return [self._row_to_entity(r) for r in rows]
