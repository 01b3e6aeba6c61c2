# src/spectral_store/db/connection.py
from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable, Iterable, Sequence
from pathlib import Path
from typing import Any

import duckdb

from spectral_store.db.dialect import Dialect, _qident, get_dialect
from spectral_store.errors import ConnectionClosedError

logger = logging.getLogger(__name__)

READING_TABLE = "reading"
METADATA_TABLE = "sample_data"

SCHEMA_VERSION = "1"

# what table-level code catches and turns into False / None / []
DB_ERRORS: tuple[type[Exception], ...] = (duckdb.Error, sqlite3.Error, ConnectionClosedError)

# columns added after the first release go here so old database files get migrated
_EXPECTED_COLUMNS: dict[str, list[tuple[str, str]]] = {
    READING_TABLE: [
        ("sample_type", "VARCHAR"),
    ],
    METADATA_TABLE: [
        ("field_type", "VARCHAR"),
    ],
}


class DatabaseConnection:
    """One DB-API connection plus the dialect that talks to it.

    The raw connection is opened lazily. Auto-commit is on by default; turning it
    off opens an explicit transaction that `commit()`/`rollback()` close and reopen.
    """

    def __init__(self, url: str | Path = ":memory:", backend: str | Dialect = "duckdb") -> None:
        self.url = str(url)
        self.dialect = backend if isinstance(backend, Dialect) else get_dialect(backend)
        self._raw: Any = None
        self._auto_commit = True
        self._in_transaction = False
        self._closed = False
        self._on_close: list[Callable[[DatabaseConnection], None]] = []

    @classmethod
    def _wrap(cls, url: str, dialect: Dialect, raw: Any) -> DatabaseConnection:
        conn = cls(url, dialect)
        conn._raw = raw
        return conn

    @property
    def backend(self) -> str:
        return self.dialect.name

    @property
    def raw(self) -> Any:
        if self._closed:
            raise ConnectionClosedError(f"Connection to {self.url} is closed")
        if self._raw is None:
            if self.url not in ("", ":memory:"):
                Path(self.url).parent.mkdir(parents=True, exist_ok=True)
            self._raw = self.dialect.connect(self.url)
        return self._raw

    @property
    def is_closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        if params:
            return self.raw.execute(sql, list(params))
        return self.raw.execute(sql)

    def executemany(self, sql: str, rows: Iterable[Sequence[Any]]) -> int:
        batch = [list(r) for r in rows]
        if batch:
            self.raw.executemany(sql, batch)
        return len(batch)

    def cursor(self) -> Any:
        return self.raw.cursor()

    def fetch_all(self, sql: str, params: Sequence[Any] | None = None) -> list[tuple]:
        return self.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: Sequence[Any] | None = None) -> tuple | None:
        return self.execute(sql, params).fetchone()

    def fetch_dicts(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        """Execute a query and return rows as dictionaries using the cursor description."""
        cur = self.execute(sql, params)
        cols = [d[0] for d in cur.description]
        rows = cur.fetchall()
        return [dict(zip(cols, r, strict=True)) for r in rows]

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @property
    def auto_commit(self) -> bool:
        return self._auto_commit

    @auto_commit.setter
    def auto_commit(self, value: bool) -> None:
        value = bool(value)
        if value == self._auto_commit:
            return
        if value:
            # switching back on commits whatever is pending
            self._end_transaction("COMMIT")
        else:
            self._begin()
        self._auto_commit = value

    def _begin(self) -> None:
        if not self._in_transaction:
            self.raw.execute("BEGIN TRANSACTION")
            self._in_transaction = True

    def _end_transaction(self, statement: str) -> None:
        if self._in_transaction:
            self._in_transaction = False
            self.raw.execute(statement)

    def commit(self) -> None:
        self._end_transaction("COMMIT")
        if not self._auto_commit:
            self._begin()

    def rollback(self) -> None:
        self._end_transaction("ROLLBACK")
        if not self._auto_commit:
            self._begin()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def new_connection(self) -> DatabaseConnection:
        """Open a dedicated connection to the same database; raises if the backend cannot."""
        raw = self.dialect.duplicate(self.raw, self.url)
        return DatabaseConnection._wrap(self.url, self.dialect, raw)

    def init_schema(self) -> None:
        """Create tables/indexes if missing, then add any columns older files lack."""
        schema_path = Path(__file__).resolve().parent / self.dialect.schema_file
        sql = schema_path.read_text(encoding="utf-8")
        self.dialect.execute_script(self.raw, sql)

        for table_name, columns in _EXPECTED_COLUMNS.items():
            self._ensure_columns(table_name, columns)

        self.execute(
            "INSERT OR REPLACE INTO meta_info(key, value) VALUES (?, ?)",
            ["schema_version", SCHEMA_VERSION],
        )

    def table_columns(self, table_name: str) -> list[str]:
        return self.dialect.table_columns(self.raw, table_name)

    def _ensure_columns(self, table_name: str, columns: list[tuple[str, str]]) -> None:
        """Best-effort schema migration: add missing columns (no drops / type changes)."""
        existing = set(self.table_columns(table_name))
        for col_name, col_type in columns:
            if col_name in existing:
                continue
            try:
                self.execute(f"ALTER TABLE {_qident(table_name)} ADD COLUMN {_qident(col_name)} {col_type}")
            except DB_ERRORS:
                logger.warning("Could not add column %s.%s", table_name, col_name, exc_info=True)

    def on_close(self, callback: Callable[[DatabaseConnection], None]) -> None:
        """Register `callback(conn)` to run once when this connection is closed."""
        if self._closed:
            callback(self)
            return
        self._on_close.append(callback)

    def close(self) -> None:
        """Close the underlying connection. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        raw, self._raw = self._raw, None
        callbacks, self._on_close = self._on_close, []
        try:
            if raw is not None and self._in_transaction:
                raw.execute("ROLLBACK")
        except DB_ERRORS:
            logger.warning("Rollback on close failed for %s", self.url, exc_info=True)
        finally:
            self._in_transaction = False
            if raw is not None:
                raw.close()
            for callback in callbacks:
                callback(self)

    def __enter__(self) -> DatabaseConnection:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DatabaseConnection(url={self.url!r}, backend={self.backend!r})"
