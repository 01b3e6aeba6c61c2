from __future__ import annotations

from datetime import date

import pytest

from spectral_store.errors import FilterValidationError
from spectral_store.model.filters import OrphanFilter, RangeCondition, ReadingFilter, SortKey
from spectral_store.model.metadata import INSERT_TIMESTAMP, MetadataRecord


def _ids(readings) -> list[str]:
    return [r.sample_id for r in readings]


def test_range_with_latest_flip(tables, make_reading) -> None:
    for i in range(15):
        tables.readings.add(make_reading(f"S{i:02d}", Moisture=i))

    flt = ReadingFilter(ranges=(RangeCondition("Moisture", 5, 10),))
    asc = _ids(tables.readings.find(flt))
    assert asc == [f"S{i:02d}" for i in range(5, 11)]

    desc = _ids(tables.readings.find(ReadingFilter(ranges=flt.ranges, latest=True)))
    assert desc == list(reversed(asc))


def test_range_compares_numbers_not_text(tables, make_reading) -> None:
    tables.readings.add(make_reading("A", Moisture=9))
    tables.readings.add(make_reading("B", Moisture=10))
    tables.readings.add(make_reading("C", Moisture=100))
    assert _ids(tables.readings.find(ReadingFilter(ranges=(RangeCondition("Moisture", minimum=10),)))) == ["B", "C"]


def test_range_skips_non_numeric_values(tables, make_reading) -> None:
    tables.readings.add(make_reading("NUM", Moisture=7.0))
    tables.readings.add(make_reading("TXT", Moisture="n/a"))

    assert _ids(tables.readings.find(ReadingFilter(ranges=(RangeCondition("Moisture", maximum=10),)))) == ["NUM"]
    assert _ids(tables.readings.find(ReadingFilter(ranges=(RangeCondition("Moisture", minimum=0),)))) == ["NUM"]
    assert tables.metadata.sample_ids(ReadingFilter(ranges=(RangeCondition("Moisture", maximum=10),))) == ["NUM"]


def test_limit(tables, make_reading) -> None:
    for i in range(10):
        tables.readings.add(make_reading(f"S{i}"))
    assert _ids(tables.readings.find(ReadingFilter(limit=3))) == ["S0", "S1", "S2"]
    assert _ids(tables.readings.find(ReadingFilter(limit=3, latest=True))) == ["S9", "S8", "S7"]
    assert len(tables.readings.find(ReadingFilter(limit=-1))) == 10


def test_reading_regexes(tables, make_reading) -> None:
    tables.readings.add(make_reading("S1", sample_type="leaf"))
    tables.readings.add(make_reading("S2", sample_type="soil"))
    tables.readings.add(make_reading("S1", data_format="MIR", sample_type="leaf"))

    assert _ids(tables.readings.find(ReadingFilter(sample_type="^soil$"))) == ["S2"]
    found = tables.readings.find(ReadingFilter(sample_id="^S1$", data_format="MIR"))
    assert [r.key for r in found] == [("S1", "MIR")]


def test_instrument_and_required_fields(tables, make_reading) -> None:
    tables.readings.add(make_reading("S1", Instrument="X1", Operator="ab"))
    tables.readings.add(make_reading("S2", Instrument="X2"))
    tables.readings.add(make_reading("S3", Instrument="X1"))

    assert _ids(tables.readings.find(ReadingFilter(instrument="^X1$"))) == ["S1", "S3"]
    assert _ids(tables.readings.find(ReadingFilter(required=("Operator",)))) == ["S1"]
    assert _ids(tables.readings.find(ReadingFilter(instrument="X1", required=("Operator",)))) == ["S1"]


def test_insert_timestamp_window_and_sort(tables, make_reading) -> None:
    for sid, stamp in [("JAN", "2024-01-01 10:00:00"), ("MAR", "2024-03-01 10:00:00"), ("FEB", "2024-02-01 10:00:00")]:
        r = make_reading(sid)
        r.metadata.set_value(INSERT_TIMESTAMP, stamp)
        tables.readings.add(r)

    window = ReadingFilter(start="2024-01-15", end=date(2024, 2, 28))
    assert _ids(tables.readings.find(window)) == ["FEB"]

    # a bare end date includes readings stamped later that day
    assert _ids(tables.readings.find(ReadingFilter(end="2024-02-01"))) == ["JAN", "FEB"]
    assert _ids(tables.readings.find(ReadingFilter(start=date(2024, 3, 1), end="2024-03-01"))) == ["MAR"]

    newest_first = ReadingFilter(sort_by=SortKey.INSERT_TIMESTAMP, latest=True)
    assert _ids(tables.readings.find(newest_first)) == ["MAR", "FEB", "JAN"]
    assert tables.metadata.sample_ids(ReadingFilter(sort_by=SortKey.INSERT_TIMESTAMP)) == ["JAN", "FEB", "MAR"]


def test_dummy_selection(tables, make_reading) -> None:
    for sid in ("D", "R", "U"):
        tables.readings.add(make_reading(sid))
    tables.metadata.mark_dummy("D", True)
    tables.metadata.mark_dummy("R", False)

    assert _ids(tables.readings.find(ReadingFilter(only_dummies=True))) == ["D"]
    # readings without any flag row are not matched by either switch
    assert _ids(tables.readings.find(ReadingFilter(exclude_dummies=True))) == ["R"]
    assert tables.readings.find(ReadingFilter(only_dummies=True))[0].metadata.is_dummy


def test_contradictory_filter_raises_before_query(tables) -> None:
    with pytest.raises(FilterValidationError):
        tables.readings.find(ReadingFilter(exclude_dummies=True, only_dummies=True))
    with pytest.raises(FilterValidationError):
        tables.metadata.sample_ids(ReadingFilter(exclude_dummies=True, only_dummies=True))


def test_id_queries(tables, make_reading) -> None:
    ids = [tables.readings.add(make_reading(f"S{i}", Moisture=i)) for i in range(4)]
    tables.readings.add(make_reading("S0", data_format="MIR"))

    flt = ReadingFilter(ranges=(RangeCondition("Moisture", 1, 2),))
    assert tables.metadata.db_ids(flt) == ids[1:3]
    assert tables.metadata.sample_ids(ReadingFilter(sample_id="^S0$")) == ["S0"]


def test_orphans(tables) -> None:
    for sid, stamp in [("O1", "2024-01-01 00:00:00"), ("O2", "2024-02-01 00:00:00")]:
        rec = MetadataRecord({"A": 1})
        rec.set_value(INSERT_TIMESTAMP, stamp)
        tables.metadata.store(sid, rec)

    assert tables.metadata.orphaned_ids() == ["O1", "O2"]
    assert tables.metadata.orphaned_ids(OrphanFilter(latest=True, limit=1)) == ["O2"]
    assert tables.metadata.orphaned_ids(OrphanFilter(start="2024-01-15")) == ["O2"]
    assert tables.metadata.orphaned_ids(OrphanFilter(end="2024-01-01")) == ["O1"]
