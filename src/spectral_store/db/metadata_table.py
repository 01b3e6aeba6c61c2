# src/spectral_store/db/metadata_table.py
from __future__ import annotations

import logging
from typing import Any

from spectral_store.db.connection import DB_ERRORS, METADATA_TABLE, READING_TABLE, DatabaseConnection
from spectral_store.model.filters import OrphanFilter, ReadingFilter, timestamp_text
from spectral_store.model.metadata import (
    DUMMY,
    INSERT_TIMESTAMP,
    INSTRUMENT,
    RESERVED,
    DataType,
    Field,
    MetadataRecord,
    coerce,
    now_timestamp,
)
from spectral_store.query.translate import translate

logger = logging.getLogger(__name__)

_INSERT_SQL = f"INSERT INTO {METADATA_TABLE}(owner_id, field_name, field_type, field_value) VALUES (?, ?, ?, ?)"
_UPDATE_SQL = f"UPDATE {METADATA_TABLE} SET field_type = ?, field_value = ? WHERE owner_id = ? AND field_name = ?"
_DELETE_OWNER_SQL = f"DELETE FROM {METADATA_TABLE} WHERE owner_id = ?"
_DELETE_FIELD_SQL = f"DELETE FROM {METADATA_TABLE} WHERE owner_id = ? AND field_name = ?"


class MetadataTable:
    """Typed name/value fields per owner (a reading's sample ID), one row per field."""

    def __init__(self, conn: DatabaseConnection) -> None:
        self.conn = conn

    # ------------------------------------------------------------------
    # Rows
    # ------------------------------------------------------------------

    @staticmethod
    def rows_for(owner: str, record: MetadataRecord) -> list[tuple[str, str, str, str]]:
        """(owner, name, type tag, encoded value) for every storable field.

        Reserved fields are skipped, numeric/boolean values that do not validate
        are skipped with a warning, and an insert timestamp is added when absent.
        """
        rows: list[tuple[str, str, str, str]] = []
        for name, fv in record.items():
            if name in RESERVED:
                continue
            if not fv.dtype.validates(fv.value):
                logger.warning("Skipping #%s field %r: %r is not a valid %s value", owner, name, fv.value, fv.dtype.name)
                continue
            rows.append((owner, name, fv.dtype.value, fv.encoded()))
        if INSERT_TIMESTAMP not in record:
            rows.append((owner, INSERT_TIMESTAMP, DataType.STRING.value, now_timestamp()))
        return rows

    # ------------------------------------------------------------------
    # Single owner
    # ------------------------------------------------------------------

    def load(self, owner: str) -> MetadataRecord | None:
        """Every field stored for `owner`; an owner with no rows gives an empty record."""
        try:
            rows = self.conn.fetch_all(
                f"SELECT field_name, field_type, field_value FROM {METADATA_TABLE} WHERE owner_id = ? ORDER BY field_name",
                [owner],
            )
        except DB_ERRORS:
            logger.exception("Failed to load metadata for #%s", owner)
            return None

        dummy = False
        record = MetadataRecord()
        for name, tag, text in rows:
            if name == DUMMY:
                dummy = coerce(name, DataType.BOOLEAN, text, owner=owner).value is True
                continue
            record.set_field(name, coerce(name, tag, text, owner=owner))
        if not dummy:
            return record
        flagged = MetadataRecord(dummy=True)
        flagged.merge(record)
        return flagged

    def store(self, owner: str, record: MetadataRecord, remove_existing: bool = False) -> bool:
        rows = self.rows_for(owner, record)
        try:
            if remove_existing:
                self.conn.execute(_DELETE_OWNER_SQL, [owner])
                existing: set[str] = set()
            else:
                existing = {
                    r[0]
                    for r in self.conn.fetch_all(f"SELECT field_name FROM {METADATA_TABLE} WHERE owner_id = ?", [owner])
                }

            updates = [(tag, value, own, name) for own, name, tag, value in rows if name in existing]
            inserts = [row for row in rows if row[1] not in existing]
            if updates:
                self.conn.executemany(_UPDATE_SQL, updates)
            if inserts:
                self.conn.executemany(_INSERT_SQL, inserts)
        except DB_ERRORS:
            logger.exception("Failed to store metadata for #%s", owner)
            return False
        return True

    def exists(self, owner: str) -> bool:
        try:
            row = self.conn.fetch_one(f"SELECT 1 FROM {METADATA_TABLE} WHERE owner_id = ? LIMIT 1", [owner])
        except DB_ERRORS:
            logger.exception("Failed to look up metadata for #%s", owner)
            return False
        return row is not None

    def has_field(self, owner: str, name: str) -> bool:
        try:
            row = self.conn.fetch_one(
                f"SELECT 1 FROM {METADATA_TABLE} WHERE owner_id = ? AND field_name = ? LIMIT 1",
                [owner, name],
            )
        except DB_ERRORS:
            logger.exception("Failed to look up field %r for #%s", name, owner)
            return False
        return row is not None

    def remove(self, owner: str) -> bool:
        try:
            self.conn.execute(_DELETE_OWNER_SQL, [owner])
        except DB_ERRORS:
            logger.exception("Failed to remove metadata for #%s", owner)
            return False
        return True

    def remove_field(self, owner: str, name: str) -> bool:
        try:
            self.conn.execute(_DELETE_FIELD_SQL, [owner, name])
        except DB_ERRORS:
            logger.exception("Failed to remove field %r for #%s", name, owner)
            return False
        return True

    def mark_dummy(self, owner: str, flag: bool = True) -> bool:
        """Set or clear the dummy flag; the only way the flag gets written."""
        value = DataType.BOOLEAN.format(flag)
        try:
            self.conn.execute(_DELETE_FIELD_SQL, [owner, DUMMY])
            self.conn.execute(_INSERT_SQL, [owner, DUMMY, DataType.BOOLEAN.value, value])
        except DB_ERRORS:
            logger.exception("Failed to mark #%s as dummy=%s", owner, value)
            return False
        return True

    # ------------------------------------------------------------------
    # Whole table
    # ------------------------------------------------------------------

    def fields(self, dtype: DataType | None = None) -> list[Field]:
        """Distinct (name, type) pairs in use, optionally only those of one type."""
        sql = f"SELECT DISTINCT field_name, field_type FROM {METADATA_TABLE}"
        params: list[Any] = []
        if dtype is not None:
            sql += " WHERE field_type = ?"
            params.append(DataType(dtype).value)
        sql += " ORDER BY field_name, field_type"
        try:
            rows = self.conn.fetch_all(sql, params)
        except DB_ERRORS:
            logger.exception("Failed to list metadata fields")
            return []
        return [Field(name, DataType.from_tag(tag)) for name, tag in rows]

    def values(self, name: str) -> list[str]:
        """Distinct encoded values stored under one field name."""
        try:
            rows = self.conn.fetch_all(
                f"SELECT DISTINCT field_value FROM {METADATA_TABLE} "
                "WHERE field_name = ? AND field_value IS NOT NULL ORDER BY field_value",
                [name],
            )
        except DB_ERRORS:
            logger.exception("Failed to list values of %r", name)
            return []
        return [r[0] for r in rows]

    def instruments(self) -> list[str]:
        return self.values(INSTRUMENT)

    def sample_ids(self, flt: ReadingFilter) -> list[str]:
        """Sample IDs of readings matching `flt`, in filter order, without repeats."""
        stmt = translate(flt, self.conn.dialect, columns=("r.sample_id",))
        try:
            rows = self.conn.fetch_all(stmt.sql, stmt.params)
        except DB_ERRORS:
            logger.exception("Sample ID query failed: %s", stmt.sql)
            return []
        return list(dict.fromkeys(r[0] for r in rows))

    def db_ids(self, flt: ReadingFilter) -> list[int]:
        stmt = translate(flt, self.conn.dialect, columns=("r.db_id",))
        try:
            rows = self.conn.fetch_all(stmt.sql, stmt.params)
        except DB_ERRORS:
            logger.exception("Database ID query failed: %s", stmt.sql)
            return []
        return [int(r[0]) for r in rows]

    def orphaned_ids(self, flt: OrphanFilter | None = None) -> list[str]:
        """Owners that have metadata but no reading, ordered by insert timestamp."""
        flt = flt or OrphanFilter()
        sql = (
            f"SELECT ts.owner_id FROM {METADATA_TABLE} AS ts "
            "WHERE ts.field_name = ? "
            f"AND NOT EXISTS (SELECT 1 FROM {READING_TABLE} AS r WHERE r.sample_id = ts.owner_id)"
        )
        params: list[Any] = [INSERT_TIMESTAMP]
        start, end = timestamp_text(flt.start), timestamp_text(flt.end, end=True)
        if start is not None:
            sql += " AND ts.field_value >= ?"
            params.append(start)
        if end is not None:
            sql += " AND ts.field_value <= ?"
            params.append(end)
        direction = "DESC" if flt.latest else "ASC"
        sql += f" ORDER BY ts.field_value {direction}, ts.owner_id {direction}"
        if flt.limit > 0:
            sql += " " + self.conn.dialect.limit(flt.limit)
        try:
            rows = self.conn.fetch_all(sql, params)
        except DB_ERRORS:
            logger.exception("Orphan query failed")
            return []
        return [r[0] for r in rows]
