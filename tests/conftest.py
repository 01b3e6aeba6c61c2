from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_sessionstart(session) -> None:
    """Ensure repo root and src/ are on sys.path so tests can import local modules."""
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"

    # Prefer src/ (uninstalled package) over any globally installed spectral_store.
    for p in [src_dir, repo_root]:
        ps = str(p)
        if ps not in sys.path:
            sys.path.insert(0, ps)


@pytest.fixture(params=["duckdb", "sqlite"])
def backend(request) -> str:
    return request.param


@pytest.fixture
def conn(backend: str, tmp_path: Path):
    from spectral_store.db.connection import DatabaseConnection

    c = DatabaseConnection(tmp_path / f"test.{backend}", backend)
    c.init_schema()
    yield c
    c.close()


@pytest.fixture
def tables(conn):
    from spectral_store.db.registry import TableRegistry

    return TableRegistry().tables(conn)


@pytest.fixture
def make_reading():
    """Factory for small readings: make_reading("S1", Moisture=7.5, Instrument="X1")."""
    from spectral_store.model.metadata import MetadataRecord
    from spectral_store.model.reading import Reading

    def _make(sample_id: str, *, data_format: str = "NIR", sample_type: str = "leaf", n_points: int = 4, **meta) -> Reading:
        points = [(1000.0 + 2.0 * i, 0.1 * (i + 1)) for i in range(n_points)]
        return Reading(
            sample_id=sample_id,
            points=points,
            sample_type=sample_type,
            data_format=data_format,
            metadata=MetadataRecord(meta),
        )

    return _make
