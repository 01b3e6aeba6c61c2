from __future__ import annotations

from datetime import date

import pytest

from spectral_store.db.dialect import DuckDBDialect, SQLiteDialect
from spectral_store.errors import FilterValidationError
from spectral_store.model.filters import RangeCondition, ReadingFilter, SortKey
from spectral_store.query.translate import plan_query, translate


def test_empty_filter_has_no_joins_or_where() -> None:
    stmt = translate(ReadingFilter(), DuckDBDialect())
    assert stmt.sql == (
        "SELECT r.db_id, r.sample_id, r.sample_type, r.data_format, r.points FROM reading AS r ORDER BY r.db_id ASC"
    )
    assert stmt.params == ()
    assert "JOIN" not in stmt.sql
    assert "WHERE" not in stmt.sql


def test_match_all_regexes_are_ignored() -> None:
    stmt = translate(ReadingFilter(sample_id=".*", sample_type="", data_format="^.*$"), DuckDBDialect())
    assert stmt.where == ""


def test_reading_regexes_per_dialect() -> None:
    flt = ReadingFilter(sample_id="^S1", data_format="NIR")
    duck = translate(flt, DuckDBDialect())
    assert duck.where == "regexp_matches(r.sample_id, ?) AND regexp_matches(r.data_format, ?)"
    lite = translate(flt, SQLiteDialect())
    assert lite.where == "r.sample_id REGEXP ? AND r.data_format REGEXP ?"
    assert duck.params == lite.params == ("^S1", "NIR")


def test_range_uses_numeric_cast_and_skips_open_ends() -> None:
    flt = ReadingFilter(ranges=(RangeCondition("Moisture", 5, 10), RangeCondition("Protein", minimum=2)))
    stmt = translate(flt, SQLiteDialect())
    assert "JOIN sample_data AS sd0 ON sd0.owner_id = r.sample_id AND sd0.field_name = ?" in stmt.from_
    assert "JOIN sample_data AS sd1 ON sd1.owner_id = r.sample_id AND sd1.field_name = ?" in stmt.from_
    assert stmt.where == (
        "TO_NUMBER(sd0.field_value) >= ? AND TO_NUMBER(sd0.field_value) <= ? AND TO_NUMBER(sd1.field_value) >= ?"
    )
    # join parameters first, then WHERE parameters
    assert stmt.params == ("Moisture", "Protein", 5.0, 10.0, 2.0)


def test_unbounded_range_is_dropped() -> None:
    stmt = translate(ReadingFilter(ranges=(RangeCondition("Moisture"),)), DuckDBDialect())
    assert "JOIN" not in stmt.sql


def test_one_join_per_field() -> None:
    flt = ReadingFilter(
        ranges=(RangeCondition("Moisture", 1, 2),),
        required=("Moisture", "Operator"),
        start="2024-01-01",
        end=date(2024, 2, 1),
        sort_by=SortKey.INSERT_TIMESTAMP,
    )
    plan = plan_query(flt)
    assert [(j.alias, j.field_name) for j in plan.joins] == [
        ("sd0", "Moisture"),
        ("sd1", "Operator"),
        ("sd2", "Insert timestamp"),
    ]
    stmt = plan.render(DuckDBDialect())
    assert stmt.where.endswith("sd2.field_value >= ? AND sd2.field_value <= ?")
    assert stmt.params[-2:] == ("2024-01-01 00:00:00", "2024-02-01 23:59:59")
    assert stmt.order == "sd2.field_value ASC, r.db_id ASC"


def test_instrument_and_dummy_predicates() -> None:
    stmt = translate(ReadingFilter(instrument="^X1$", exclude_dummies=True), DuckDBDialect())
    assert stmt.where == "regexp_matches(sd0.field_value, ?) AND sd1.field_value = ?"
    assert stmt.params == ("Instrument", "Dummy report", "^X1$", "false")

    only = translate(ReadingFilter(only_dummies=True), DuckDBDialect())
    assert only.params == ("Dummy report", "true")


def test_latest_and_limit() -> None:
    stmt = translate(ReadingFilter(latest=True, limit=3, sort_by=SortKey.SAMPLE_ID), DuckDBDialect())
    assert stmt.sql.endswith("ORDER BY r.sample_id DESC, r.db_id DESC LIMIT 3")

    no_limit = translate(ReadingFilter(limit=0), DuckDBDialect())
    assert "LIMIT" not in no_limit.sql


def test_custom_columns_and_count() -> None:
    stmt = translate(ReadingFilter(sample_id="x", limit=5), DuckDBDialect(), columns=("r.sample_id",))
    assert stmt.sql.startswith("SELECT r.sample_id FROM reading AS r WHERE")
    assert stmt.count_sql() == (
        "SELECT COUNT(*) FROM (SELECT r.sample_id FROM reading AS r WHERE regexp_matches(r.sample_id, ?) LIMIT 5) AS counted"
    )


def test_contradictory_dummy_flags_fail_before_sql() -> None:
    with pytest.raises(FilterValidationError):
        translate(ReadingFilter(exclude_dummies=True, only_dummies=True), DuckDBDialect())


def test_inverted_range_fails() -> None:
    with pytest.raises(ValueError):
        translate(ReadingFilter(ranges=(RangeCondition("Moisture", 10, 5),)), SQLiteDialect())
