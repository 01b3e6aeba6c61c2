# scripts/bootstrap_db.py
from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path

from spectral_store.config import load_settings
from spectral_store.db.bulk import CancellationToken
from spectral_store.db.connection import DatabaseConnection
from spectral_store.db.dialect import available_backends
from spectral_store.db.registry import TableRegistry
from spectral_store.io.ndjson import read_readings
from spectral_store.logging_utils import configure_logging, log_event
from spectral_store.util.paths import default_db_path, get_paths

logger = logging.getLogger("spectral_store.bootstrap")


def _inputs(paths: list[Path]) -> list[Path]:
    """Expand directories to the *.ndjson files they contain (sorted)."""
    out: list[Path] = []
    for p in paths:
        if p.is_dir():
            out.extend(sorted(p.glob("*.ndjson")))
        else:
            out.append(p)
    return out


def _load(db_path: Path, args: argparse.Namespace, inputs: list[Path], token: CancellationToken) -> tuple[int, bool]:
    """Bulk-load every input; returns (readings now stored, whether every file loaded cleanly)."""
    with DatabaseConnection(db_path, args.backend) as conn:
        conn.init_schema()
        readings = TableRegistry().readings(conn)

        ok_all = True
        for path in inputs:
            if not path.exists():
                logger.warning("Input %s does not exist; skipped", path)
                continue
            ok = readings.bulk_add(
                read_readings(path),
                batch_size=args.batch_size,
                auto_commit=not args.no_auto_commit,
                new_connection=args.new_connection,
                store_positions=not args.no_positions,
                cancel=token,
            )
            log_event(logger, "bulk_import", path=str(path), ok=ok)
            ok_all = ok_all and ok
            if token.cancelled:
                break

        row = conn.fetch_one("SELECT COUNT(*) FROM reading")
    return (int(row[0]) if row else 0), ok_all


def main() -> None:
    settings = load_settings()

    ap = argparse.ArgumentParser(description="Create the reading database and bulk-load NDJSON readings.")
    ap.add_argument("inputs", nargs="*", type=Path, help="NDJSON files or directories (default: data/import).")
    ap.add_argument("--backend", choices=available_backends(), default=settings.backend)
    ap.add_argument("--db-path", type=Path, default=None, help="Override output database path.")
    ap.add_argument("--batch-size", type=int, default=settings.batch_size, help="Readings per checkpoint.")
    ap.add_argument("--no-auto-commit", action="store_true", help="Commit once per checkpoint instead of per statement.")
    ap.add_argument("--new-connection", action="store_true", help="Write on a dedicated connection.")
    ap.add_argument("--no-positions", action="store_true", help="Store amplitudes only.")
    ap.add_argument("--log-level", default=None)
    args = ap.parse_args()

    configure_logging(args.log_level or settings.log_level)

    db_path = args.db_path or settings.db_path or default_db_path(args.backend)
    inputs = _inputs(args.inputs or [get_paths().import_dir])

    token = CancellationToken()
    # Ctrl-C stops after the current record; checkpoints already written stay
    previous_handler = signal.signal(signal.SIGINT, lambda *_: token.cancel())

    try:
        total, ok_all = _load(db_path, args, inputs, token)
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    print(f"Bootstrapped {args.backend} database at {db_path}")
    print(f"{'readings':26} {total:8}")
    if not ok_all:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
