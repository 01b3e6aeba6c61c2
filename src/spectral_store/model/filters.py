# src/spectral_store/model/filters.py
from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime
from enum import Enum

from spectral_store.errors import FilterValidationError
from spectral_store.model.metadata import TIMESTAMP_FORMAT

# any bound at or below this value means "no bound"
UNBOUNDED = -1.0

_MATCH_ALL = {"", ".*", "^.*$", ".*$", "^.*"}
_DATE_ONLY = re.compile(r"\d{4}-\d{2}-\d{2}")


def is_match_all(regexp: str | None) -> bool:
    return regexp is None or regexp.strip() in _MATCH_ALL


def is_bounded(bound: float | None) -> bool:
    return bound is not None and float(bound) > UNBOUNDED


def timestamp_text(value: datetime | date | str | None, *, end: bool = False) -> str | None:
    """Render a date bound the way insert timestamps are stored.

    A bare date covers the whole day: it starts at 00:00:00 and, as an `end`
    bound, runs through 23:59:59.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, date):
        day = value.isoformat()
    else:
        text = str(value).strip()
        if not _DATE_ONLY.fullmatch(text):
            return text
        day = text
    return f"{day} 23:59:59" if end else f"{day} 00:00:00"


class SortKey(str, Enum):
    DATABASE_ID = "db_id"
    SAMPLE_ID = "sample_id"
    INSERT_TIMESTAMP = "insert_timestamp"


@dataclass(frozen=True)
class RangeCondition:
    """Numeric window on one metadata field (inclusive on both ends)."""

    field: str
    minimum: float | None = UNBOUNDED
    maximum: float | None = UNBOUNDED

    @property
    def has_minimum(self) -> bool:
        return is_bounded(self.minimum)

    @property
    def has_maximum(self) -> bool:
        return is_bounded(self.maximum)

    @property
    def is_active(self) -> bool:
        return bool(self.field.strip()) and (self.has_minimum or self.has_maximum)


@dataclass(frozen=True)
class ReadingFilter:
    """Conditions for selecting readings.

    Regular expressions that are empty (or match everything) impose no
    constraint. `start`/`end` bound the insert timestamp; `None` is open.
    """

    sample_id: str = ""
    sample_type: str = ""
    data_format: str = ""
    instrument: str = ""
    start: datetime | date | str | None = None
    end: datetime | date | str | None = None
    ranges: tuple[RangeCondition, ...] = ()
    required: tuple[str, ...] = ()
    exclude_dummies: bool = False
    only_dummies: bool = False
    latest: bool = False
    sort_by: SortKey = SortKey.DATABASE_ID
    limit: int = -1

    def check(self) -> None:
        if self.exclude_dummies and self.only_dummies:
            raise FilterValidationError("Readings flagged as dummies can be either included or excluded, but not both!")
        for r in self.ranges:
            if r.has_minimum and r.has_maximum and float(r.minimum) > float(r.maximum):  # type: ignore[arg-type]
                raise FilterValidationError(f"Range on {r.field!r} has minimum > maximum: {r.minimum} > {r.maximum}")

    def normalized(self) -> ReadingFilter:
        """Validate, then drop ranges without bounds and blank required names."""
        self.check()
        return replace(
            self,
            ranges=tuple(r for r in self.ranges if r.is_active),
            required=tuple(n for n in self.required if n and n.strip()),
            sort_by=SortKey(self.sort_by),
        )

    @property
    def start_text(self) -> str | None:
        return timestamp_text(self.start)

    @property
    def end_text(self) -> str | None:
        return timestamp_text(self.end, end=True)


@dataclass(frozen=True)
class IDFilter:
    """Plain column conditions on the reading table only."""

    sample_id: str = ""
    sample_type: str = ""
    data_format: str = ""
    limit: int = -1


@dataclass(frozen=True)
class OrphanFilter:
    """Selects metadata owners that have no reading, ordered by insert timestamp."""

    start: datetime | date | str | None = None
    end: datetime | date | str | None = None
    latest: bool = False
    limit: int = -1
