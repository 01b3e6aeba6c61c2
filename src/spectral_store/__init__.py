"""spectral_store package.

A local store for spectral readings (ordered position/amplitude points) with
typed per-sample metadata, backed by DuckDB or SQLite.

Key ideas:
- Readings are unique per (sample ID, data format); metadata belongs to the sample ID
- Filters are plain objects translated to parameterised SQL (no query language)
- Large result sets stream through a forward-only cursor
- Bulk loads checkpoint every N readings and can be cancelled between records

Public API:
- spectral_store.query.api.open_default_api
- spectral_store.query.api.QueryAPI
- spectral_store.db.registry.TableRegistry
- spectral_store.model (Reading, MetadataRecord, ReadingFilter, ...)
"""

from __future__ import annotations

from spectral_store.db.bulk import CancellationToken
from spectral_store.db.connection import DatabaseConnection
from spectral_store.db.registry import TableRegistry, Tables
from spectral_store.errors import EndOfSequence, FilterValidationError, SpectralStoreError
from spectral_store.model import MetadataRecord, RangeCondition, Reading, ReadingFilter

__all__ = [
    "__version__",
    "CancellationToken",
    "DatabaseConnection",
    "EndOfSequence",
    "FilterValidationError",
    "MetadataRecord",
    "RangeCondition",
    "Reading",
    "ReadingFilter",
    "SpectralStoreError",
    "TableRegistry",
    "Tables",
]

__version__ = "0.1.0"
