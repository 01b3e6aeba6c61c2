# src/spectral_store/db/cursor.py
from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from spectral_store.db.connection import DB_ERRORS, DatabaseConnection
from spectral_store.errors import EndOfSequence
from spectral_store.model.reading import Reading
from spectral_store.query.translate import SelectStatement

logger = logging.getLogger(__name__)


def _run(cur: Any, sql: str, params: tuple) -> Any:
    return cur.execute(sql, list(params)) if params else cur.execute(sql)


class ReadingCursor:
    """Forward-only stream of readings over one SELECT.

    Rows are turned into readings one at a time. The cursor closes itself when
    the last row has been handed out; `close()` may be called any number of
    times. When `owns_connection` is set, closing also closes `conn`.

        with table.iterate(flt) as cur:
            for reading in cur:
                ...
    """

    def __init__(
        self,
        conn: DatabaseConnection,
        stmt: SelectStatement,
        build: Callable[[tuple], Reading],
        *,
        owns_connection: bool = False,
    ) -> None:
        self._conn = conn
        self._build = build
        self._owns_connection = owns_connection
        self._closed = False
        self._pending: tuple | None = None
        self._cur: Any = None

        try:
            self._cur = conn.cursor()
            _run(self._cur, stmt.sql, stmt.params)
            self._pending = self._cur.fetchone()
        except BaseException:
            self.close()
            raise

        self.size = self._count_rows(stmt)
        if self._pending is None:
            self.close()

    def _count_rows(self, stmt: SelectStatement) -> int:
        """Row count of the same selection, or -1 when it cannot be determined."""
        counter = None
        try:
            counter = self._conn.cursor()
            row = _run(counter, stmt.count_sql(), stmt.params).fetchone()
            return int(row[0]) if row else 0
        except DB_ERRORS:
            logger.warning("Row count query failed; size unknown", exc_info=True)
            return -1
        finally:
            if counter is not None:
                counter.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def has_next(self) -> bool:
        return not self._closed and self._pending is not None

    def next(self) -> Reading:
        if not self.has_next():
            raise EndOfSequence("No more readings")

        row = self._pending
        try:
            self._pending = self._cur.fetchone()
        except DB_ERRORS:
            logger.exception("Fetching the next row failed")
            self._pending = None

        try:
            reading = self._build(row)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            logger.exception("Could not rebuild reading from row %r", row[:4] if row else row)
            self.close()
            raise EndOfSequence("Cursor stopped at an unreadable row") from None

        if self._pending is None:
            self.close()
        return reading

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending = None
        cur, self._cur = self._cur, None
        try:
            if cur is not None:
                cur.close()
        except DB_ERRORS:
            logger.warning("Closing cursor failed", exc_info=True)
        finally:
            if self._owns_connection:
                self._conn.close()

    def __iter__(self) -> ReadingCursor:
        return self

    def __next__(self) -> Reading:
        return self.next()

    def __enter__(self) -> ReadingCursor:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
