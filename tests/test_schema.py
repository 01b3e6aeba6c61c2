from __future__ import annotations

from pathlib import Path

import pytest

from spectral_store.db.connection import DatabaseConnection
from spectral_store.errors import ConnectionClosedError


def test_schema_initializes(conn) -> None:
    assert conn.table_columns("reading") == ["db_id", "sample_id", "sample_type", "data_format", "points"]
    assert conn.table_columns("sample_data") == ["owner_id", "field_name", "field_type", "field_value"]
    assert conn.fetch_one("SELECT value FROM meta_info WHERE key = ?", ["schema_version"]) == ("1",)


def test_init_schema_is_idempotent(conn) -> None:
    conn.init_schema()
    conn.init_schema()
    assert conn.fetch_one("SELECT COUNT(*) FROM meta_info") == (1,)


def test_unknown_backend_rejected() -> None:
    with pytest.raises(ValueError):
        DatabaseConnection(":memory:", "oracle")


def test_close_is_idempotent(tmp_path: Path) -> None:
    c = DatabaseConnection(tmp_path / "x.duckdb")
    c.init_schema()
    c.close()
    c.close()
    assert c.is_closed
    with pytest.raises(ConnectionClosedError):
        c.execute("SELECT 1")


def test_in_memory_sqlite_cannot_be_shared() -> None:
    with DatabaseConnection(":memory:", "sqlite") as c:
        with pytest.raises(ValueError):
            c.new_connection()


def test_manual_transactions(conn) -> None:
    conn.auto_commit = False
    conn.execute("INSERT INTO meta_info(key, value) VALUES (?, ?)", ["a", "1"])
    conn.rollback()
    assert conn.fetch_one("SELECT value FROM meta_info WHERE key = ?", ["a"]) is None

    conn.execute("INSERT INTO meta_info(key, value) VALUES (?, ?)", ["b", "2"])
    conn.commit()
    conn.auto_commit = True
    assert conn.auto_commit
    assert conn.fetch_one("SELECT value FROM meta_info WHERE key = ?", ["b"]) == ("2",)


def test_dedicated_connection_sees_same_data(conn) -> None:
    conn.execute("INSERT INTO meta_info(key, value) VALUES (?, ?)", ["k", "v"])
    other = conn.new_connection()
    try:
        assert other.fetch_one("SELECT value FROM meta_info WHERE key = ?", ["k"]) == ("v",)
    finally:
        other.close()
    assert not conn.is_closed
