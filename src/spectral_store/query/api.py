# src/spectral_store/query/api.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from spectral_store.config import load_settings
from spectral_store.db.connection import DatabaseConnection
from spectral_store.db.cursor import ReadingCursor
from spectral_store.db.registry import TableRegistry, Tables
from spectral_store.model.filters import OrphanFilter, ReadingFilter
from spectral_store.model.metadata import DataType, Field
from spectral_store.model.reading import DEFAULT_FORMAT, Reading
from spectral_store.util.paths import default_db_path


@dataclass
class QueryAPI:
    """High-level read helpers over one database connection."""

    conn: DatabaseConnection
    registry: TableRegistry = field(default_factory=TableRegistry)

    @property
    def tables(self) -> Tables:
        return self.registry.tables(self.conn)

    def readings(self, flt: ReadingFilter | None = None) -> list[Reading]:
        """
        Matching readings with points and metadata loaded.

        Raises FilterValidationError for contradictory filters (e.g. both dummy switches).
        """
        return self.tables.readings.find(flt)

    def iterate(self, flt: ReadingFilter | None = None, *, new_connection: bool = False) -> ReadingCursor | None:
        return self.tables.readings.iterate(flt, new_connection=new_connection)

    def sample_ids(self, flt: ReadingFilter | None = None) -> list[str]:
        return self.tables.metadata.sample_ids(flt or ReadingFilter())

    def reading(self, sample_id: str, data_format: str = DEFAULT_FORMAT) -> Reading | None:
        return self.tables.readings.load_sample(sample_id, data_format)

    def fields(self, dtype: DataType | None = None) -> list[Field]:
        return self.tables.metadata.fields(dtype)

    def instruments(self) -> list[str]:
        return self.tables.metadata.instruments()

    def orphans(self, flt: OrphanFilter | None = None) -> list[str]:
        return self.tables.metadata.orphaned_ids(flt)

    def close(self) -> None:
        self.conn.close()


def open_default_api(
    *,
    backend: str | None = None,
    db_path: Path | None = None,
    registry: TableRegistry | None = None,
) -> QueryAPI:
    """
    Open the default local DB and make sure its schema exists.

    Unset arguments come from SPECTRAL_STORE_* settings; the path falls back to
    data/db/readings.<backend> under the active data directory.
    """
    settings = load_settings()
    backend = backend or settings.backend
    if db_path is None:
        db_path = settings.db_path if settings.db_path is not None else default_db_path(backend)

    conn = DatabaseConnection(db_path, backend)
    conn.init_schema()
    return QueryAPI(conn=conn, registry=registry or TableRegistry())
