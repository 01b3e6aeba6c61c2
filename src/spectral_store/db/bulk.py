# src/spectral_store/db/bulk.py
from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING

from spectral_store.db.connection import DB_ERRORS, METADATA_TABLE, READING_TABLE, DatabaseConnection
from spectral_store.db.metadata_table import MetadataTable
from spectral_store.model.reading import Reading, encode_points

if TYPE_CHECKING:
    from spectral_store.db.reading_table import ReadingTable

logger = logging.getLogger(__name__)

_DELETE_READING_SQL = f"DELETE FROM {READING_TABLE} WHERE sample_id = ? AND data_format = ?"
_DELETE_METADATA_SQL = f"DELETE FROM {METADATA_TABLE} WHERE owner_id = ?"
_INSERT_READING_SQL = f"INSERT INTO {READING_TABLE}(sample_id, sample_type, data_format, points) VALUES (?, ?, ?, ?)"
_INSERT_METADATA_SQL = (
    f"INSERT INTO {METADATA_TABLE}(owner_id, field_name, field_type, field_value) VALUES (?, ?, ?, ?)"
)


class CancellationToken:
    """Set from any thread to stop a running bulk write before its next record."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class _Batch:
    """Staged deletes and inserts for up to one checkpoint.

    A later record with the same identity replaces an earlier one in the batch.
    """

    def __init__(self) -> None:
        self.count = 0
        self.readings: dict[tuple[str, str], tuple[str, str, str, str]] = {}
        self.metadata: dict[str, list[tuple[str, str, str, str]]] = {}

    def stage(self, reading: Reading, store_positions: bool) -> None:
        if not reading.sample_id:
            raise ValueError("Reading has no sample ID")
        points = encode_points(reading.points, store_positions=store_positions)
        meta_rows = MetadataTable.rows_for(reading.sample_id, reading.metadata)
        self.readings[reading.key] = (reading.sample_id, reading.sample_type, reading.data_format, points)
        self.metadata[reading.sample_id] = meta_rows
        self.count += 1

    def clear(self) -> None:
        self.count = 0
        self.readings.clear()
        self.metadata.clear()

    def __len__(self) -> int:
        return self.count


class BulkWriter:
    """Write many readings with periodic checkpoints.

    Each record replaces any stored reading with the same (sample ID, format)
    and all metadata of its sample ID. Fields of the old record that the new
    one lacks are gone afterwards.
    """

    def __init__(self, readings: ReadingTable, metadata: MetadataTable) -> None:
        self.readings = readings
        self.metadata = metadata

    def _connection(self, new_connection: bool) -> tuple[DatabaseConnection, bool]:
        shared = self.readings.conn
        if not new_connection:
            return shared, False
        try:
            return shared.new_connection(), True
        except (ValueError, *DB_ERRORS):
            logger.warning("Could not open a dedicated connection, writing on the shared one", exc_info=True)
            return shared, False

    def _flush(self, conn: DatabaseConnection, batch: _Batch) -> bool:
        try:
            conn.executemany(_DELETE_READING_SQL, list(batch.readings))
            conn.executemany(_DELETE_METADATA_SQL, [(owner,) for owner in batch.metadata])
            conn.executemany(_INSERT_READING_SQL, batch.readings.values())
            conn.executemany(_INSERT_METADATA_SQL, [row for rows in batch.metadata.values() for row in rows])
            if not conn.auto_commit:
                conn.commit()
        except DB_ERRORS:
            logger.exception("Bulk checkpoint of %d readings failed", len(batch))
            return False
        finally:
            batch.clear()
        return True

    def write(
        self,
        records: Iterable[Reading],
        batch_size: int = 1000,
        auto_commit: bool = True,
        new_connection: bool = False,
        store_positions: bool = True,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """Returns True only if every record was written."""
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        conn, owned = self._connection(new_connection)
        previous = conn.auto_commit
        batch = _Batch()
        written = 0
        ok = True
        finished = False
        try:
            if not auto_commit:
                conn.auto_commit = False

            for reading in records:
                if cancel is not None and cancel.cancelled:
                    logger.info("Bulk write stopped; %d readings written, %d staged dropped", written, len(batch))
                    return False
                try:
                    batch.stage(reading, store_positions)
                except (AttributeError, TypeError, ValueError):
                    logger.exception("Could not stage reading %r", getattr(reading, "key", reading))
                    ok = False
                    continue
                if len(batch) >= batch_size:
                    staged = len(batch)
                    if not self._flush(conn, batch):
                        return False
                    written += staged

            if len(batch):
                staged = len(batch)
                if not self._flush(conn, batch):
                    return False
                written += staged
            finished = True
            logger.debug("Bulk write done: %d readings", written)
            return ok
        finally:
            try:
                if not finished and not conn.auto_commit:
                    # drop whatever was executed since the last checkpoint
                    conn.rollback()
                conn.auto_commit = previous
            except DB_ERRORS:
                logger.exception("Could not restore connection state after bulk write")
            finally:
                if owned:
                    conn.close()
