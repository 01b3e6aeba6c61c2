"""
examples/bulk_demo.py

Demonstrates the store end to end on a throwaway database:

    python examples/bulk_demo.py [--backend sqlite]

This script demonstrates:
- bulk-loading synthetic readings with checkpoints
- cancelling a bulk load part-way (only whole checkpoints survive)
- filtering by metadata range, instrument and insert timestamp
- streaming results through a cursor
- exporting a JSON bundle and a pandas summary
"""

from __future__ import annotations

import argparse
import math
import tempfile
from pathlib import Path

from spectral_store.db.bulk import CancellationToken
from spectral_store.db.connection import DatabaseConnection
from spectral_store.logging_utils import configure_logging
from spectral_store.model import MetadataRecord, RangeCondition, Reading, ReadingFilter, SortKey
from spectral_store.query.api import QueryAPI
from spectral_store.query.export import dumps_bundle, export_bundle, readings_to_frame


def synthetic_reading(i: int) -> Reading:
    """A smooth fake NIR spectrum with a moisture-dependent absorption band."""
    moisture = 4.0 + (i % 10)
    points = []
    for k in range(64):
        wl = 1100.0 + 10.0 * k
        band = math.exp(-(((wl - 1450.0) / 40.0) ** 2)) * moisture / 20.0
        points.append((wl, 0.2 + band))
    meta = MetadataRecord({"Instrument": f"X{1 + i % 2}", "Moisture": moisture})
    return Reading(sample_id=f"S{i:04d}", points=points, sample_type="grain", metadata=meta)


def main() -> None:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    ap.add_argument("--backend", choices=["duckdb", "sqlite"], default="duckdb")
    ap.add_argument("-n", type=int, default=250, help="Number of readings to generate.")
    args = ap.parse_args()

    configure_logging("INFO")

    with tempfile.TemporaryDirectory() as tmp:
        conn = DatabaseConnection(Path(tmp) / f"demo.{args.backend}", args.backend)
        conn.init_schema()
        api = QueryAPI(conn=conn)
        readings = api.tables.readings

        # 1) a cancelled load: stop after 130 records with checkpoints of 50
        token = CancellationToken()

        def stream():
            for i in range(args.n):
                if i == 130:
                    token.cancel()
                yield synthetic_reading(i)

        ok = readings.bulk_add(stream(), batch_size=50, auto_commit=False, cancel=token)
        print(f"cancelled load ok={ok} stored={len(api.sample_ids())}")

        # 2) the full load (replaces what is already there)
        ok = readings.bulk_add((synthetic_reading(i) for i in range(args.n)), batch_size=50, new_connection=True)
        print(f"full load ok={ok} stored={len(api.sample_ids())}")

        # 3) filters
        wet = ReadingFilter(instrument="^X1$", ranges=(RangeCondition("Moisture", 10, 12),), limit=5)
        print("wet X1 samples:", api.sample_ids(wet))

        newest = ReadingFilter(sort_by=SortKey.INSERT_TIMESTAMP, latest=True, limit=3)
        print("newest:", [r.sample_id for r in api.readings(newest)])

        # 4) streaming
        cur = api.iterate(ReadingFilter(ranges=(RangeCondition("Moisture", maximum=5),)))
        if cur is not None:
            with cur:
                total = sum(max(r.amplitudes) for r in cur)
            print(f"streamed {cur.size} dry readings, summed peak={total:.3f}")

        # 5) export
        print(readings_to_frame(api.readings(ReadingFilter(limit=5))).to_string(index=False))
        print(dumps_bundle(export_bundle(api, ReadingFilter(limit=1), include_points=False)))

        api.close()


if __name__ == "__main__":
    main()
