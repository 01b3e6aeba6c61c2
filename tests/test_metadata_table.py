from __future__ import annotations

import logging

from spectral_store.model.metadata import DUMMY, FORMAT, INSERT_TIMESTAMP, DataType, Field, FieldValue, MetadataRecord


def _rows(conn, owner: str) -> list[tuple]:
    return conn.fetch_all(
        "SELECT field_name, field_type, field_value FROM sample_data WHERE owner_id = ? ORDER BY field_name",
        [owner],
    )


def test_round_trip(tables) -> None:
    rec = MetadataRecord({"Instrument": "X1", "Moisture": 7.5, "Replicates": 3, "Checked": True})
    assert tables.metadata.store("S1", rec)

    loaded = tables.metadata.load("S1")
    assert loaded is not None
    assert loaded.field("Moisture") == FieldValue(DataType.NUMERIC, 7.5)
    assert loaded.field("Replicates") == FieldValue(DataType.NUMERIC, 3.0)
    assert loaded.field("Checked") == FieldValue(DataType.BOOLEAN, True)
    assert loaded.value("Instrument") == "X1"
    assert rec.triples() <= loaded.triples()
    assert not loaded.is_dummy


def test_insert_timestamp_injected_when_absent(tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"A": "x"}))
    stamp = tables.metadata.load("S1").value(INSERT_TIMESTAMP)
    assert isinstance(stamp, str) and len(stamp) == len("2024-01-01 00:00:00")

    rec = MetadataRecord({"A": "x"})
    rec.set_value(INSERT_TIMESTAMP, "2020-05-06 07:08:09")
    tables.metadata.store("S2", rec)
    assert tables.metadata.load("S2").value(INSERT_TIMESTAMP) == "2020-05-06 07:08:09"


def test_reserved_fields_are_never_stored(tables) -> None:
    rec = MetadataRecord({"A": 1})
    rec.set_value(FORMAT, "NIR")
    rec.set_value(DUMMY, True)
    assert tables.metadata.store("S1", rec)
    assert not tables.metadata.has_field("S1", FORMAT)
    assert not tables.metadata.has_field("S1", DUMMY)
    assert tables.metadata.has_field("S1", "A")


def test_invalid_typed_values_are_skipped(tables, caplog) -> None:
    rec = MetadataRecord({"Good": 1.0})
    rec.set_value("Bad", "abc", DataType.NUMERIC)
    with caplog.at_level(logging.WARNING):
        assert tables.metadata.store("S1", rec)
    assert not tables.metadata.has_field("S1", "Bad")
    assert tables.metadata.has_field("S1", "Good")
    assert "Bad" in caplog.text


def test_unparseable_rows_load_as_strings(conn, tables, caplog) -> None:
    conn.execute(
        "INSERT INTO sample_data(owner_id, field_name, field_type, field_value) VALUES (?, ?, ?, ?)",
        ["S1", "Weight", "N", "heavy"],
    )
    with caplog.at_level(logging.WARNING):
        loaded = tables.metadata.load("S1")
    assert loaded.field("Weight") == FieldValue(DataType.STRING, "heavy")
    assert "Weight" in caplog.text


def test_null_values_load_as_empty_strings(conn, tables) -> None:
    conn.execute(
        "INSERT INTO sample_data(owner_id, field_name, field_type, field_value) VALUES (?, ?, ?, ?)",
        ["S1", "Comment", "S", None],
    )
    assert tables.metadata.load("S1").field("Comment") == FieldValue(DataType.STRING, "")

    rec = MetadataRecord({"Operator": None})
    assert tables.metadata.store("S2", rec)
    assert ("Operator", "S", "") in _rows(conn, "S2")
    assert tables.metadata.load("S2").value("Operator") == ""


def test_store_updates_existing_and_inserts_new(conn, tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"A": 1}))
    tables.metadata.store("S1", MetadataRecord({"A": 2, "B": "x"}))

    rows = _rows(conn, "S1")
    assert [r[0] for r in rows].count("A") == 1
    loaded = tables.metadata.load("S1")
    assert loaded.value("A") == 2.0
    assert loaded.value("B") == "x"


def test_store_remove_existing_replaces_everything(conn, tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"A": 1, "B": "x"}))
    tables.metadata.store("S1", MetadataRecord({"C": True}), remove_existing=True)
    assert [r[0] for r in _rows(conn, "S1")] == ["C", INSERT_TIMESTAMP]


def test_dummy_flag(tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"A": 1}))
    assert tables.metadata.mark_dummy("S1")
    loaded = tables.metadata.load("S1")
    assert loaded.is_dummy
    assert DUMMY not in loaded

    assert tables.metadata.mark_dummy("S1", False)
    assert not tables.metadata.load("S1").is_dummy


def test_exists_and_removal(tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"A": 1, "B": 2}))
    assert tables.metadata.exists("S1")
    assert not tables.metadata.exists("nope")

    assert tables.metadata.remove_field("S1", "A")
    assert not tables.metadata.has_field("S1", "A")
    assert tables.metadata.remove("S1")
    assert not tables.metadata.exists("S1")
    assert len(tables.metadata.load("S1")) == 0


def test_fields_values_and_instruments(tables) -> None:
    tables.metadata.store("S1", MetadataRecord({"Instrument": "X2", "Moisture": 1.0}))
    tables.metadata.store("S2", MetadataRecord({"Instrument": "X1", "Moisture": 2.0}))
    tables.metadata.store("S3", MetadataRecord({"Instrument": "X1"}))

    assert tables.metadata.instruments() == ["X1", "X2"]
    assert tables.metadata.values("Moisture") == ["1.0", "2.0"]
    assert tables.metadata.fields(DataType.NUMERIC) == [Field("Moisture", DataType.NUMERIC)]
    names = [f.name for f in tables.metadata.fields()]
    assert names == ["Insert timestamp", "Instrument", "Moisture"]
