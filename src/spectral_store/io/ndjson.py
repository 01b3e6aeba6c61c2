# src/spectral_store/io/ndjson.py
"""Readings as newline-delimited JSON, one object per reading.

    {"sample_id": "S1", "sample_type": "leaf", "data_format": "NIR",
     "points": [[1000.0, 0.12], ...],
     "metadata": {"Instrument": "X1", "Moisture": 7.5},
     "metadata_types": {"Instrument": "S", "Moisture": "N"}}

`metadata_types` is optional; missing tags are inferred from the JSON value.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

from spectral_store.model.metadata import DataType, MetadataRecord, coerce
from spectral_store.model.reading import DEFAULT_FORMAT, Reading

logger = logging.getLogger(__name__)


def reading_to_record(reading: Reading) -> dict[str, Any]:
    return {
        "sample_id": reading.sample_id,
        "sample_type": reading.sample_type,
        "data_format": reading.data_format,
        "points": [[p.position, p.amplitude] for p in reading.points],
        "metadata": {name: fv.value for name, fv in reading.metadata.items()},
        "metadata_types": {name: fv.dtype.value for name, fv in reading.metadata.items()},
    }


def record_to_reading(rec: dict[str, Any]) -> Reading:
    """Build a Reading from one NDJSON object. Raises KeyError/ValueError on bad shape."""
    sample_id = str(rec["sample_id"])
    types = rec.get("metadata_types") or {}

    metadata = MetadataRecord()
    for name, value in (rec.get("metadata") or {}).items():
        tag = types.get(name)
        if tag is None:
            metadata.set_value(name, value)
        else:
            text = value if isinstance(value, str) else json.dumps(value)
            metadata.set_field(name, coerce(name, DataType.from_tag(tag), text, owner=sample_id))

    points = []
    for item in rec.get("points") or []:
        if isinstance(item, (list, tuple)) and len(item) == 2:
            points.append((float(item[0]), float(item[1])))
        else:
            # bare amplitude: position is its index
            points.append((float(len(points)), float(item)))

    return Reading(
        sample_id=sample_id,
        points=points,
        sample_type=str(rec.get("sample_type") or ""),
        data_format=str(rec.get("data_format") or DEFAULT_FORMAT),
        metadata=metadata,
    )


def read_readings(path: Path) -> Iterator[Reading]:
    """Yield readings from an NDJSON file, skipping blank and malformed lines."""
    with Path(path).open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield record_to_reading(json.loads(line))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError):
                logger.warning("Skipping malformed line %d in %s", lineno, path, exc_info=True)


def _record_key(obj: dict[str, Any]) -> tuple[str, str] | None:
    sid = obj.get("sample_id")
    if sid is None:
        return None
    return (str(sid), str(obj.get("data_format") or DEFAULT_FORMAT))


def append_ndjson_dedupe(path: Path, readings: Iterable[Reading]) -> int:
    """Append readings to NDJSON, skipping any (sample_id, data_format) already present.

    Scans existing file once to build a set of seen keys.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    seen: set[tuple[str, str]] = set()
    if path.exists():
        with path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    obj = json.loads(line)
                except json.JSONDecodeError:
                    continue
                key = _record_key(obj) if isinstance(obj, dict) else None
                if key is not None:
                    seen.add(key)

    n = 0
    with path.open("a", encoding="utf-8") as f:
        for reading in readings:
            if reading.key in seen:
                continue
            f.write(json.dumps(reading_to_record(reading), ensure_ascii=False) + "\n")
            seen.add(reading.key)
            n += 1
    return n
