# src/spectral_store/db/dialect.py
from __future__ import annotations

import re
import sqlite3
from abc import ABC, abstractmethod
from typing import Any

import duckdb


def _qident(name: str) -> str:
    """Quote an identifier (table/column names); both backends accept double quotes."""
    return '"' + name.replace('"', '""') + '"'


def _pragma_table_info_sql(table_name: str) -> str:
    """Build a PRAGMA table_info(...) statement for a table name."""
    safe = table_name.replace("'", "''")
    return f"PRAGMA table_info('{safe}')"


class Dialect(ABC):
    """Backend-specific SQL fragments and connection handling.

    Everything else in the engine emits backend-neutral SQL with `?` placeholders.
    """

    name: str = ""
    schema_file: str = ""

    @abstractmethod
    def regexp(self, column: str) -> str:
        """Regex-match fragment for `column`; the pattern is bound as one parameter."""

    def limit(self, n: int) -> str:
        return f"LIMIT {int(n)}"

    @abstractmethod
    def to_number(self, expr: str) -> str:
        """Cast a string-encoded value to a number for range comparisons."""

    @abstractmethod
    def connect(self, url: str) -> Any:
        ...

    @abstractmethod
    def duplicate(self, raw: Any, url: str) -> Any:
        """Open a second, independent connection to the same database."""

    def execute_script(self, raw: Any, sql: str) -> None:
        raw.execute(sql)

    def table_columns(self, raw: Any, table_name: str) -> list[str]:
        rows = raw.execute(_pragma_table_info_sql(table_name)).fetchall()
        # (cid, name, type, notnull, dflt_value, pk)
        return [r[1] for r in rows]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DuckDBDialect(Dialect):
    name = "duckdb"
    schema_file = "schema_duckdb.sql"

    def regexp(self, column: str) -> str:
        return f"regexp_matches({column}, ?)"

    def to_number(self, expr: str) -> str:
        return f"TRY_CAST({expr} AS DOUBLE)"

    def connect(self, url: str) -> duckdb.DuckDBPyConnection:
        return duckdb.connect(url)

    def duplicate(self, raw: duckdb.DuckDBPyConnection, url: str) -> duckdb.DuckDBPyConnection:
        # cursor() is a new connection to the same database instance (works for :memory: too)
        return raw.cursor()


def _sqlite_regexp(pattern: str | None, value: Any) -> bool:
    if pattern is None or value is None:
        return False
    return re.search(pattern, str(value)) is not None


def _sqlite_to_number(value: Any) -> float | None:
    # NULL for non-numeric text, like TRY_CAST on DuckDB
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class SQLiteDialect(Dialect):
    name = "sqlite"
    schema_file = "schema_sqlite.sql"

    def regexp(self, column: str) -> str:
        return f"{column} REGEXP ?"

    def to_number(self, expr: str) -> str:
        return f"TO_NUMBER({expr})"

    def connect(self, url: str) -> sqlite3.Connection:
        # isolation_level=None: auto-commit unless a transaction is begun explicitly
        con = sqlite3.connect(url, isolation_level=None, check_same_thread=False)
        con.create_function("REGEXP", 2, _sqlite_regexp, deterministic=True)
        con.create_function("TO_NUMBER", 1, _sqlite_to_number, deterministic=True)
        return con

    def duplicate(self, raw: sqlite3.Connection, url: str) -> sqlite3.Connection:
        if url in ("", ":memory:"):
            raise ValueError("An in-memory SQLite database cannot be opened from a second connection")
        return self.connect(url)

    def execute_script(self, raw: sqlite3.Connection, sql: str) -> None:
        raw.executescript(sql)


_DIALECTS: dict[str, type[Dialect]] = {
    "duckdb": DuckDBDialect,
    "sqlite": SQLiteDialect,
}


def get_dialect(name: str) -> Dialect:
    key = (name or "").strip().lower()
    if key not in _DIALECTS:
        raise ValueError(f"Unknown backend: {name!r} (expected one of {sorted(_DIALECTS)})")
    return _DIALECTS[key]()


def available_backends() -> list[str]:
    return sorted(_DIALECTS)
