# src/mooskine/store/backend.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..errors import InvalidQueryError
from ..model.models import Note, Notebook, entity_class

logger = logging.getLogger(__name__)

_TABLES = {
    Notebook.ENTITY: "notebooks",
    Note.ENTITY: "notes",
}


def _table(entity: str) -> str:
    try:
        return _TABLES[entity]
    except KeyError:
        raise ValueError(f"No table for entity {entity!r}") from None


def _columns(entity: str) -> tuple[str, ...]:
    return entity_class(entity).FIELDS


def _check_fields(entity: str, names: list[str]) -> None:
    # Column names are interpolated into SQL; only known ones may pass.
    allowed = {"id", *_columns(entity)}
    unknown = [n for n in names if n not in allowed]
    if unknown:
        raise InvalidQueryError(f"{entity} has no field(s): {', '.join(unknown)}")


class SQLiteBackend:
    """
    SQLite file behind a Store.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each method opens its own SQLite connection, so the foreground and
      background contexts never share a connection or a cursor
    - writes run inside BEGIN IMMEDIATE, which serializes concurrent commits
    """

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def load(self) -> None:
        """Create the file (if absent) and bring its schema up to date. Raises on any failure."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info(
            "SQLiteBackend ready db=%s notebooks=%s notes=%s",
            self._db_path,
            self.count(Notebook.ENTITY),
            self.count(Note.ENTITY),
        )

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        # Needed for ON DELETE CASCADE; per connection, off by default.
        conn.execute("PRAGMA foreign_keys=ON")

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notebooks (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL DEFAULT '',
                    created_at REAL NOT NULL
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notes (
                    id TEXT PRIMARY KEY,
                    notebook_id TEXT NOT NULL REFERENCES notebooks(id) ON DELETE CASCADE,
                    text TEXT NOT NULL DEFAULT '',
                    content BLOB,
                    created_at REAL NOT NULL
                )
                """
            )

            def add_col(table: str, name: str, decl: str) -> None:
                cur.execute(f"PRAGMA table_info({table})")
                cols = {row["name"] for row in cur.fetchall()}
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
                logger.info("SQLiteBackend migration: added column %s.%s", table, name)

            # Files written before the preview text existed only had content.
            add_col("notes", "text", "TEXT NOT NULL DEFAULT ''")
            add_col("notes", "content", "BLOB")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_notes_notebook ON notes(notebook_id, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_notebooks_created ON notebooks(created_at)")

            cur.execute("COMMIT")
        except Exception:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

    @staticmethod
    def _row_to_dict(entity: str, row: sqlite3.Row) -> dict[str, Any]:
        out: dict[str, Any] = {"id": str(row["id"])}
        for col in _columns(entity):
            out[col] = row[col]
        return out

    # ---- reads ----

    def count(self, entity: str) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute(f"SELECT COUNT(*) FROM {_table(entity)}").fetchone()
            return int(n)
        finally:
            conn.close()

    def fetch_rows(self, entity: str, where: tuple[tuple[str, Any], ...] = ()) -> list[dict[str, Any]]:
        _check_fields(entity, [f for f, _ in where])
        sql = f"SELECT * FROM {_table(entity)}"
        params: list[Any] = []
        if where:
            clauses = []
            for field, value in where:
                if value is None:
                    clauses.append(f"{field} IS NULL")
                else:
                    clauses.append(f"{field} = ?")
                    params.append(value)
            sql += " WHERE " + " AND ".join(clauses)

        conn = self._get_conn()
        try:
            return [self._row_to_dict(entity, r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def fetch_row(self, entity: str, key: str) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            return self.read_row(conn, entity, key)
        finally:
            conn.close()

    # ---- writes (inside transaction()) ----

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT; rolls back and re-raises on any error."""
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

    def read_row(self, conn: sqlite3.Connection, entity: str, key: str) -> dict[str, Any] | None:
        row = conn.execute(f"SELECT * FROM {_table(entity)} WHERE id = ?", (key,)).fetchone()
        return self._row_to_dict(entity, row) if row else None

    def insert_row(self, conn: sqlite3.Connection, entity: str, key: str, values: dict[str, Any]) -> None:
        cols = list(_columns(entity))
        placeholders = ", ".join("?" for _ in range(len(cols) + 1))
        conn.execute(
            f"INSERT INTO {_table(entity)} (id, {', '.join(cols)}) VALUES ({placeholders})",
            (key, *(values.get(c) for c in cols)),
        )

    def update_row(self, conn: sqlite3.Connection, entity: str, key: str, values: dict[str, Any]) -> None:
        if not values:
            return
        _check_fields(entity, list(values))
        assignments = ", ".join(f"{c} = ?" for c in values)
        conn.execute(
            f"UPDATE {_table(entity)} SET {assignments} WHERE id = ?",
            (*values.values(), key),
        )

    def delete_row(self, conn: sqlite3.Connection, entity: str, key: str) -> None:
        conn.execute(f"DELETE FROM {_table(entity)} WHERE id = ?", (key,))
