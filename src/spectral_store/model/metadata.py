# src/spectral_store/model/metadata.py
from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

logger = logging.getLogger(__name__)

FORMAT = "Format"
DUMMY = "Dummy report"
INSERT_TIMESTAMP = "Insert timestamp"
INSTRUMENT = "Instrument"

# never written by MetadataTable.store()
RESERVED = frozenset({FORMAT, DUMMY})

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


class DataType(str, Enum):
    """Type tag stored alongside every metadata value."""

    STRING = "S"
    NUMERIC = "N"
    BOOLEAN = "B"
    UNKNOWN = "U"

    @classmethod
    def from_tag(cls, tag: str | None) -> DataType:
        try:
            return cls((tag or "").strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def infer(cls, value: Any) -> DataType:
        # bool before int: bool is a subclass of int
        if isinstance(value, bool):
            return cls.BOOLEAN
        if isinstance(value, (int, float)):
            return cls.NUMERIC
        return cls.STRING

    def parse(self, text: str) -> Any:
        """Convert the string encoding into a Python value; raises ValueError on mismatch."""
        if self is DataType.NUMERIC:
            return float(text)
        if self is DataType.BOOLEAN:
            low = str(text).strip().lower()
            if low in _TRUE:
                return True
            if low in _FALSE:
                return False
            raise ValueError(f"Not a boolean: {text!r}")
        return "" if text is None else str(text)

    def format(self, value: Any) -> str:
        """Produce the string encoding for a value of this type."""
        if self is DataType.NUMERIC:
            return repr(float(value))
        if self is DataType.BOOLEAN:
            if isinstance(value, str):
                return "true" if self.parse(value) else "false"
            return "true" if value else "false"
        return "" if value is None else str(value)

    def validates(self, value: Any) -> bool:
        if self is DataType.BOOLEAN and not isinstance(value, (bool, str)):
            return False
        try:
            self.format(value)
        except (TypeError, ValueError):
            return False
        return True


class FieldValue(NamedTuple):
    dtype: DataType
    value: Any

    def encoded(self) -> str:
        return self.dtype.format(self.value)


@dataclass(frozen=True)
class Field:
    name: str
    dtype: DataType = DataType.UNKNOWN

    def __str__(self) -> str:
        return f"{self.name}[{self.dtype.value}]"


def coerce(name: str, dtype: DataType | str, text: str, *, owner: str | None = None) -> FieldValue:
    """Parse `text` for the declared type tag; unparseable text is kept as a STRING value."""
    if not isinstance(dtype, DataType):
        dtype = DataType.from_tag(dtype)
    try:
        return FieldValue(dtype, dtype.parse(text))
    except (TypeError, ValueError):
        logger.warning("Failed to parse #%s: name=%s, type=%s, value=%r", owner, name, dtype.value, text)
        return FieldValue(DataType.STRING, "" if text is None else str(text))


def now_timestamp() -> str:
    return datetime.now().strftime(TIMESTAMP_FORMAT)


class MetadataRecord:
    """Named, typed fields attached to one reading's sample ID."""

    def __init__(self, values: Mapping[str, Any] | None = None, *, dummy: bool = False) -> None:
        self._fields: dict[str, FieldValue] = {}
        self._dummy = dummy
        for name, value in (values or {}).items():
            self.set_value(name, value)

    @property
    def is_dummy(self) -> bool:
        return self._dummy

    def set_value(self, name: str, value: Any, dtype: DataType | None = None) -> None:
        if isinstance(value, FieldValue):
            self._fields[name] = value
            return
        self._fields[name] = FieldValue(dtype or DataType.infer(value), value)

    def set_field(self, name: str, field_value: FieldValue) -> None:
        self._fields[name] = field_value

    def value(self, name: str, default: Any = None) -> Any:
        fv = self._fields.get(name)
        return default if fv is None else fv.value

    def field(self, name: str) -> FieldValue | None:
        return self._fields.get(name)

    def remove(self, name: str) -> bool:
        return self._fields.pop(name, None) is not None

    def fields(self) -> list[Field]:
        return [Field(name, fv.dtype) for name, fv in self._fields.items()]

    def items(self) -> Iterator[tuple[str, FieldValue]]:
        return iter(self._fields.items())

    def merge(self, other: MetadataRecord) -> None:
        """Copy all fields of `other` into this record, overwriting on name clashes."""
        for name, fv in other.items():
            self._fields[name] = fv

    def copy(self) -> MetadataRecord:
        out = MetadataRecord()
        out._fields = dict(self._fields)
        out._dummy = self._dummy
        return out

    def as_dict(self) -> dict[str, Any]:
        return {name: fv.value for name, fv in self._fields.items()}

    def triples(self) -> set[tuple[str, str, str]]:
        """(name, type tag, encoded value) for every field."""
        return {(name, fv.dtype.value, fv.encoded()) for name, fv in self._fields.items()}

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetadataRecord):
            return NotImplemented
        return self._fields == other._fields and self._dummy == other._dummy

    def __repr__(self) -> str:
        return f"MetadataRecord({self.as_dict()!r}, dummy={self._dummy})"
