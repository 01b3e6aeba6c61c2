# src/spectral_store/util/paths.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from platformdirs import user_data_dir

APP_NAME = "spectral-store"
DATA_DIR_ENV = "SPECTRAL_STORE_DATA_DIR"

_DB_FILENAMES = {
    "duckdb": "readings.duckdb",
    "sqlite": "readings.sqlite",
}


@dataclass(frozen=True)
class StorePaths:
    """
    Where spectral-store keeps its database files.

    The data directory is chosen by:
      1) SPECTRAL_STORE_DATA_DIR environment variable (points directly to the data directory)
      2) <repo_root>/data when running from a checkout (pyproject.toml found upward from cwd)
      3) A platform-appropriate per-user data directory (via platformdirs)

    Tests usually construct StorePaths(repo_root=tmp_path).
    """

    repo_root: Path
    data_root: Path | None = None

    @property
    def data_dir(self) -> Path:
        # If data_root is set, treat it as the *data directory itself*.
        return self.data_root if self.data_root is not None else (self.repo_root / "data")

    @property
    def db_dir(self) -> Path:
        return self.data_dir / "db"

    @property
    def import_dir(self) -> Path:
        return self.data_dir / "import"

    def default_db_path(self, backend: str = "duckdb") -> Path:
        try:
            return self.db_dir / _DB_FILENAMES[backend]
        except KeyError:
            raise ValueError(f"Unknown backend: {backend!r}") from None


def get_repo_root() -> Path:
    """
    Find repo root by walking upward from current working directory until pyproject.toml is found.

    If not found, returns Path.cwd().
    """
    here = Path.cwd().resolve()
    for p in [here, *here.parents]:
        if (p / "pyproject.toml").exists():
            return p
    return here


def _default_user_data_dir() -> Path:
    return Path(user_data_dir(appname=APP_NAME, appauthor=False)).resolve()


def get_paths() -> StorePaths:
    """Return the active path policy (see StorePaths)."""
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        data_root = Path(env).expanduser().resolve()
        return StorePaths(repo_root=data_root, data_root=data_root)

    repo_root = get_repo_root()
    if (repo_root / "pyproject.toml").exists():
        return StorePaths(repo_root=repo_root)

    data_root = _default_user_data_dir()
    return StorePaths(repo_root=data_root, data_root=data_root)


def default_db_path(backend: str = "duckdb") -> Path:
    return get_paths().default_db_path(backend)
