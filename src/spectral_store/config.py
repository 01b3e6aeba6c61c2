# src/spectral_store/config.py
from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from spectral_store.db.dialect import available_backends
from spectral_store.logging_utils import LEVEL_ENV
from spectral_store.util.paths import default_db_path

BACKEND_ENV = "SPECTRAL_STORE_BACKEND"
DB_PATH_ENV = "SPECTRAL_STORE_DB_PATH"
BATCH_SIZE_ENV = "SPECTRAL_STORE_BATCH_SIZE"

DEFAULT_BACKEND = "duckdb"
DEFAULT_BATCH_SIZE = 1000

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


@dataclass(frozen=True)
class Settings:
    backend: str = DEFAULT_BACKEND
    db_path: Path | None = None
    batch_size: int = DEFAULT_BATCH_SIZE
    log_level: str = "INFO"

    def resolved_db_path(self) -> Path:
        """db_path, or the backend's default file under the data directory."""
        return self.db_path if self.db_path is not None else default_db_path(self.backend)


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Read settings from the environment. Raises ValueError on invalid values."""
    env = os.environ if environ is None else environ

    backend = env.get(BACKEND_ENV, DEFAULT_BACKEND).strip().lower() or DEFAULT_BACKEND
    if backend not in available_backends():
        raise ValueError(f"{BACKEND_ENV}={backend!r} is not one of {available_backends()}")

    raw_path = env.get(DB_PATH_ENV, "").strip()
    db_path = Path(raw_path).expanduser() if raw_path else None

    raw_batch = env.get(BATCH_SIZE_ENV, "").strip()
    try:
        batch_size = int(raw_batch) if raw_batch else DEFAULT_BATCH_SIZE
    except ValueError:
        raise ValueError(f"{BATCH_SIZE_ENV} must be an integer, got {raw_batch!r}") from None
    if batch_size < 1:
        raise ValueError(f"{BATCH_SIZE_ENV} must be >= 1, got {batch_size}")

    log_level = env.get(LEVEL_ENV, "INFO").strip().upper() or "INFO"
    if log_level not in _LEVELS:
        raise ValueError(f"{LEVEL_ENV}={log_level!r} is not a logging level")

    return Settings(backend=backend, db_path=db_path, batch_size=batch_size, log_level=log_level)
