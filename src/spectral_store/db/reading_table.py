# src/spectral_store/db/reading_table.py
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from functools import partial
from typing import Any

from spectral_store.db.bulk import BulkWriter, CancellationToken
from spectral_store.db.connection import DB_ERRORS, READING_TABLE, DatabaseConnection
from spectral_store.db.cursor import ReadingCursor
from spectral_store.db.dialect import _qident
from spectral_store.db.metadata_table import MetadataTable
from spectral_store.model.filters import IDFilter, ReadingFilter, is_match_all
from spectral_store.model.metadata import MetadataRecord
from spectral_store.model.reading import DEFAULT_FORMAT, Reading, decode_points, encode_points
from spectral_store.query.translate import translate

logger = logging.getLogger(__name__)

COLUMNS: tuple[str, ...] = ("db_id", "sample_id", "sample_type", "data_format", "points")

_SELECT = f"SELECT db_id, sample_id, sample_type, data_format, points FROM {READING_TABLE}"


def reading_from_row(row: Sequence[Any], metadata: MetadataTable | None = None) -> Reading:
    """Rebuild a Reading from (db_id, sample_id, sample_type, data_format, points).

    Raises ValueError when the stored points cannot be decoded or when the
    sample's metadata cannot be loaded.
    """
    db_id, sample_id, sample_type, data_format, points = row
    decoded = decode_points(points)
    record = MetadataRecord()
    if metadata is not None:
        record = metadata.load(sample_id)
        if record is None:
            raise ValueError(f"Metadata for #{sample_id} could not be loaded")
    return Reading(
        sample_id=sample_id,
        points=decoded,
        sample_type=sample_type or "",
        data_format=data_format,
        db_id=int(db_id),
        metadata=record,
    )


class ReadingTable:
    """Readings keyed by (sample ID, format), each with an engine-assigned database ID."""

    def __init__(self, conn: DatabaseConnection, metadata: MetadataTable | None = None) -> None:
        self.conn = conn
        self.metadata = metadata if metadata is not None else MetadataTable(conn)

    def _load_one(self, sql: str, params: Sequence[Any], what: str) -> Reading | None:
        try:
            row = self.conn.fetch_one(sql, params)
        except DB_ERRORS:
            logger.exception("Failed to load reading %s", what)
            return None
        if row is None:
            return None
        try:
            return reading_from_row(row, self.metadata)
        except ValueError:
            logger.exception("Stored reading %s is unreadable", what)
            return None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def exists(self, db_id: int) -> bool:
        try:
            return self.conn.fetch_one(f"SELECT 1 FROM {READING_TABLE} WHERE db_id = ?", [int(db_id)]) is not None
        except DB_ERRORS:
            logger.exception("Failed to look up reading %s", db_id)
            return False

    def exists_sample(self, sample_id: str, data_format: str = DEFAULT_FORMAT) -> bool:
        return self.database_id(sample_id, data_format) is not None

    def database_id(self, sample_id: str, data_format: str = DEFAULT_FORMAT) -> int | None:
        try:
            row = self.conn.fetch_one(
                f"SELECT db_id FROM {READING_TABLE} WHERE sample_id = ? AND data_format = ?",
                [sample_id, data_format],
            )
        except DB_ERRORS:
            logger.exception("Failed to look up #%s (%s)", sample_id, data_format)
            return None
        return None if row is None else int(row[0])

    def load(self, db_id: int) -> Reading | None:
        return self._load_one(f"{_SELECT} WHERE db_id = ?", [int(db_id)], f"id={db_id}")

    def load_sample(self, sample_id: str, data_format: str = DEFAULT_FORMAT) -> Reading | None:
        return self._load_one(
            f"{_SELECT} WHERE sample_id = ? AND data_format = ?",
            [sample_id, data_format],
            f"#{sample_id} ({data_format})",
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(self, reading: Reading, store_positions: bool = True) -> int | None:
        """Insert a new reading plus its metadata and set `reading.db_id`.

        A reading whose (sample ID, format) is already stored is rejected.
        """
        if self.exists_sample(reading.sample_id, reading.data_format):
            logger.warning("Reading #%s (%s) already exists; not added", reading.sample_id, reading.data_format)
            return None

        try:
            rows = self.conn.fetch_all(
                f"INSERT INTO {READING_TABLE}(sample_id, sample_type, data_format, points) "
                "VALUES (?, ?, ?, ?) RETURNING db_id",
                [
                    reading.sample_id,
                    reading.sample_type,
                    reading.data_format,
                    encode_points(reading.points, store_positions=store_positions),
                ],
            )
        except DB_ERRORS:
            logger.exception("Failed to add reading #%s (%s)", reading.sample_id, reading.data_format)
            return None

        db_id = int(rows[0][0])
        if not self.metadata.store(reading.sample_id, reading.metadata):
            self.remove(db_id, keep_metadata=True)
            return None
        reading.db_id = db_id
        return db_id

    def _others_share(self, sample_id: str) -> bool:
        row = self.conn.fetch_one(f"SELECT 1 FROM {READING_TABLE} WHERE sample_id = ? LIMIT 1", [sample_id])
        return row is not None

    def _remove_where(self, where: str, params: Sequence[Any], keep_metadata: bool, what: str) -> bool:
        try:
            rows = self.conn.fetch_all(f"SELECT sample_id FROM {READING_TABLE} WHERE {where}", params)
            if not rows:
                return False
            self.conn.execute(f"DELETE FROM {READING_TABLE} WHERE {where}", params)
            sample_id = rows[0][0]
            # metadata belongs to the sample ID, which other formats may still use
            if not keep_metadata and not self._others_share(sample_id):
                self.metadata.remove(sample_id)
        except DB_ERRORS:
            logger.exception("Failed to remove reading %s", what)
            return False
        return True

    def remove(self, db_id: int, keep_metadata: bool = False) -> bool:
        return self._remove_where("db_id = ?", [int(db_id)], keep_metadata, f"id={db_id}")

    def remove_sample(self, sample_id: str, data_format: str = DEFAULT_FORMAT, keep_metadata: bool = False) -> bool:
        return self._remove_where(
            "sample_id = ? AND data_format = ?",
            [sample_id, data_format],
            keep_metadata,
            f"#{sample_id} ({data_format})",
        )

    def bulk_add(
        self,
        records: Iterable[Reading],
        batch_size: int = 1000,
        auto_commit: bool = True,
        new_connection: bool = False,
        store_positions: bool = True,
        cancel: CancellationToken | None = None,
    ) -> bool:
        return BulkWriter(self, self.metadata).write(
            records,
            batch_size=batch_size,
            auto_commit=auto_commit,
            new_connection=new_connection,
            store_positions=store_positions,
            cancel=cancel,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def values(self, columns: Sequence[str] = COLUMNS, flt: IDFilter | None = None) -> list[dict[str, Any]]:
        """Plain column values of the reading table, one dict per row."""
        flt = flt or IDFilter()
        unknown = [c for c in columns if c not in COLUMNS]
        if unknown or not columns:
            raise ValueError(f"Unknown reading columns: {unknown or columns!r} (expected some of {COLUMNS})")

        where: list[str] = []
        params: list[Any] = []
        for column, regexp in (
            ("sample_id", flt.sample_id),
            ("sample_type", flt.sample_type),
            ("data_format", flt.data_format),
        ):
            if not is_match_all(regexp):
                where.append(self.conn.dialect.regexp(column))
                params.append(regexp)

        sql = f"SELECT {', '.join(_qident(c) for c in columns)} FROM {READING_TABLE}"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY db_id"
        if flt.limit > 0:
            sql += " " + self.conn.dialect.limit(flt.limit)
        try:
            return self.conn.fetch_dicts(sql, params)
        except DB_ERRORS:
            logger.exception("Reading value query failed")
            return []

    def find(self, flt: ReadingFilter | None = None) -> list[Reading]:
        """All matching readings with metadata loaded; unreadable rows are skipped."""
        stmt = translate(flt or ReadingFilter(), self.conn.dialect)
        try:
            rows = self.conn.fetch_all(stmt.sql, stmt.params)
        except DB_ERRORS:
            logger.exception("Reading query failed: %s", stmt.sql)
            return []

        out: list[Reading] = []
        for row in rows:
            try:
                out.append(reading_from_row(row, self.metadata))
            except ValueError:
                logger.exception("Skipping unreadable reading id=%s", row[0])
        return out

    def iterate(self, flt: ReadingFilter | None = None, new_connection: bool = False) -> ReadingCursor | None:
        """Stream matching readings; the caller closes the returned cursor."""
        stmt = translate(flt or ReadingFilter(), self.conn.dialect)

        conn, owned = self.conn, False
        if new_connection:
            try:
                conn, owned = self.conn.new_connection(), True
            except (ValueError, *DB_ERRORS):
                logger.warning("Could not open a dedicated connection, reading on the shared one", exc_info=True)

        metadata = MetadataTable(conn) if owned else self.metadata
        try:
            return ReadingCursor(conn, stmt, partial(reading_from_row, metadata=metadata), owns_connection=owned)
        except DB_ERRORS:
            logger.exception("Could not open reading cursor: %s", stmt.sql)
            if owned:
                conn.close()
            return None
