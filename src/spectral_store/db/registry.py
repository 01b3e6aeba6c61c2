# src/spectral_store/db/registry.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING, NamedTuple

from spectral_store.db.connection import DatabaseConnection

if TYPE_CHECKING:
    from spectral_store.db.metadata_table import MetadataTable
    from spectral_store.db.reading_table import ReadingTable


class Tables(NamedTuple):
    readings: ReadingTable
    metadata: MetadataTable


class TableRegistry:
    """Table handles per connection, created on first use and then reused.

    Create one registry and pass it around. Handles keep their connection alive,
    so a handle stays usable after the caller drops the connection itself. An
    entry is dropped when its connection is closed, or explicitly via `discard()`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # id(conn) -> handles; the handles hold conn, so the id cannot be reused while listed
        self._tables: dict[int, Tables] = {}

    def tables(self, conn: DatabaseConnection) -> Tables:
        from spectral_store.db.metadata_table import MetadataTable
        from spectral_store.db.reading_table import ReadingTable

        with self._lock:
            found = self._tables.get(id(conn))
            if found is None:
                metadata = MetadataTable(conn)
                found = Tables(ReadingTable(conn, metadata), metadata)
                self._tables[id(conn)] = found
                register = True
            else:
                register = False
        if register:
            conn.on_close(self.discard)
        return found

    def readings(self, conn: DatabaseConnection) -> ReadingTable:
        return self.tables(conn).readings

    def metadata(self, conn: DatabaseConnection) -> MetadataTable:
        return self.tables(conn).metadata

    def discard(self, conn: DatabaseConnection) -> None:
        """Forget the handles for `conn`; a no-op when it has none."""
        with self._lock:
            found = self._tables.get(id(conn))
            if found is not None and found.readings.conn is conn:
                del self._tables[id(conn)]

    def __contains__(self, conn: object) -> bool:
        with self._lock:
            found = self._tables.get(id(conn))
            return found is not None and found.readings.conn is conn

    def __len__(self) -> int:
        with self._lock:
            return len(self._tables)
