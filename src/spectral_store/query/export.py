from __future__ import annotations

import json
from collections.abc import Iterable
from typing import Any

import pandas as pd

from spectral_store.model.filters import ReadingFilter
from spectral_store.model.reading import Reading
from spectral_store.query.api import QueryAPI

_BASE_COLUMNS = ["db_id", "sample_id", "sample_type", "data_format", "n_points"]


def readings_to_frame(readings: Iterable[Reading]) -> pd.DataFrame:
    """One row per reading: identity columns, point count, then one column per metadata field."""
    rows: list[dict[str, Any]] = []
    meta_cols: dict[str, None] = {}
    for r in readings:
        row: dict[str, Any] = {
            "db_id": r.db_id,
            "sample_id": r.sample_id,
            "sample_type": r.sample_type,
            "data_format": r.data_format,
            "n_points": len(r.points),
        }
        for name, value in r.metadata.as_dict().items():
            meta_cols.setdefault(name, None)
            row[name] = value
        rows.append(row)
    return pd.DataFrame(rows, columns=_BASE_COLUMNS + list(meta_cols))


def points_frame(reading: Reading) -> pd.DataFrame:
    """Points of one reading in stored order."""
    return pd.DataFrame(reading.points, columns=["position", "amplitude"])


def reading_to_dict(reading: Reading) -> dict[str, Any]:
    return {
        "db_id": reading.db_id,
        "sample_id": reading.sample_id,
        "sample_type": reading.sample_type,
        "data_format": reading.data_format,
        "is_dummy": reading.metadata.is_dummy,
        "metadata": {name: fv.value for name, fv in reading.metadata.items()},
        "metadata_types": {name: fv.dtype.value for name, fv in reading.metadata.items()},
        "points": [[p.position, p.amplitude] for p in reading.points],
    }


def export_bundle(api: QueryAPI, flt: ReadingFilter | None = None, *, include_points: bool = True) -> dict[str, Any]:
    """
    Export matching readings as a machine-friendly bundle.

    The returned object is fully JSON-serializable.

    Args:
        api: An open QueryAPI.
        flt: Selection; None exports everything.
        include_points: If False, each reading's `points` list is left out.

    Returns:
        A dict containing:
            - `filter`: the selection that was applied
            - `count`: number of readings
            - `readings`: one dict per reading (identity, metadata, points)
    """
    flt = flt or ReadingFilter()
    readings = api.readings(flt)

    out_readings = []
    for r in readings:
        d = reading_to_dict(r)
        if not include_points:
            d.pop("points")
        out_readings.append(d)

    return {
        "filter": {
            "sample_id": flt.sample_id,
            "sample_type": flt.sample_type,
            "data_format": flt.data_format,
            "instrument": flt.instrument,
            "start": flt.start_text,
            "end": flt.end_text,
            "latest": flt.latest,
            "limit": flt.limit,
        },
        "count": len(out_readings),
        "readings": out_readings,
    }


def dumps_bundle(bundle: dict[str, Any]) -> str:
    return json.dumps(bundle, indent=2, ensure_ascii=False)
