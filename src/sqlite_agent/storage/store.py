"""SQLite-backed tabular storage used for schema introspection and row inserts."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, List, Mapping, Optional, Sequence

from ..config import section
from ..errors import ConfigurationError, StorageError
from .schema import ColumnDescriptor, TargetSchema

__all__ = ["DEFAULT_DB_PATH", "TabularStore", "quote_identifier"]

DEFAULT_DB_PATH = Path("data/agent.sqlite")
LOGGER = logging.getLogger(__name__)


def quote_identifier(name: str) -> str:
    """Quote ``name`` as an SQL identifier."""
    if not name or "\x00" in name:
        raise ConfigurationError(f"Invalid SQL identifier: {name!r}")
    return '"' + name.replace('"', '""') + '"'


class TabularStore:
    """Thin wrapper over one ``sqlite3`` connection."""

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        if str(db_path) == ":memory:":
            self.db_path: Optional[Path] = None
        else:
            self.db_path = Path(db_path).resolve()
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = self._open_connection()

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "TabularStore":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        target = ":memory:" if self.db_path is None else str(self.db_path)
        connection = sqlite3.connect(target)
        connection.row_factory = sqlite3.Row
        return connection

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "TabularStore":
        paths = section(config, "paths")
        db_path = paths.get("db_path")
        if db_path:
            return cls(db_path)
        return cls(Path(paths.get("data") or "data") / "agent.sqlite")

    @property
    def connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("Storage connection is closed")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit on success, roll back everything on any exception."""
        connection = self.connection
        try:
            yield connection
            connection.commit()
        except Exception:
            connection.rollback()
            raise

    def executescript(self, script: str) -> None:
        self.connection.executescript(script)
        self.connection.commit()

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        """Run a read query for reporting."""
        return self.connection.execute(sql, params).fetchall()

    def register_function(self, name: str, num_params: int, func: Callable[..., Any]) -> None:
        self.connection.create_function(name, num_params, func)

    def table_schema(self, table: str) -> TargetSchema:
        """Ordered column names and declared types; empty when the table is missing."""
        cursor = self.connection.execute(f"PRAGMA table_info({quote_identifier(table)})")
        columns = [
            ColumnDescriptor.from_declaration(row["name"], row["type"])
            for row in cursor.fetchall()
            if row["name"]
        ]
        return TargetSchema.from_columns(table, columns)

    def insert_rows(self, table: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        """Insert ``rows`` in one transaction; the first failure discards all of them."""
        if columns:
            column_sql = ", ".join(quote_identifier(name) for name in columns)
            placeholders = ", ".join("?" for _ in columns)
            sql = f"INSERT INTO {quote_identifier(table)} ({column_sql}) VALUES ({placeholders})"
        else:
            sql = f"INSERT INTO {quote_identifier(table)} DEFAULT VALUES"
        LOGGER.debug("Preparing INSERT: %s", sql)

        inserted = 0
        try:
            with self.transaction() as connection:
                for values in rows:
                    connection.execute(sql, tuple(values))
                    inserted += 1
                    LOGGER.debug("Row %d inserted", inserted)
        except sqlite3.Error as error:
            LOGGER.error("Insert failed after %d row(s): %s", inserted, error)
            raise StorageError(f"Failed to insert row: {error}") from error
        return inserted

    def update(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run one write statement in its own transaction and return the row count."""
        with self.transaction() as connection:
            cursor = connection.execute(sql, params)
        return cursor.rowcount
