from spectral_store.model.filters import (
    UNBOUNDED,
    IDFilter,
    OrphanFilter,
    RangeCondition,
    ReadingFilter,
    SortKey,
)
from spectral_store.model.metadata import (
    DUMMY,
    FORMAT,
    INSERT_TIMESTAMP,
    INSTRUMENT,
    DataType,
    Field,
    FieldValue,
    MetadataRecord,
)
from spectral_store.model.reading import DEFAULT_FORMAT, Point, Reading, decode_points, encode_points

__all__ = [
    "DEFAULT_FORMAT",
    "DUMMY",
    "FORMAT",
    "INSERT_TIMESTAMP",
    "INSTRUMENT",
    "UNBOUNDED",
    "DataType",
    "Field",
    "FieldValue",
    "IDFilter",
    "MetadataRecord",
    "OrphanFilter",
    "Point",
    "RangeCondition",
    "Reading",
    "ReadingFilter",
    "SortKey",
    "decode_points",
    "encode_points",
]
