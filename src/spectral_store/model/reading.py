# src/spectral_store/model/reading.py
from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import NamedTuple

from spectral_store.model.metadata import MetadataRecord

DEFAULT_FORMAT = "NIR"


class Point(NamedTuple):
    position: float
    amplitude: float


def _fmt_float(x: float) -> str:
    return repr(float(x))


def encode_points(points: Iterable[Point | tuple[float, float]], *, store_positions: bool = True) -> str:
    """Serialize points as `pos:amp,pos:amp,...` (or `amp,amp,...` without positions)."""
    parts: list[str] = []
    for pos, amp in points:
        if store_positions:
            parts.append(f"{_fmt_float(pos)}:{_fmt_float(amp)}")
        else:
            parts.append(_fmt_float(amp))
    return ",".join(parts)


def decode_points(text: str | None) -> list[Point]:
    """Parse the delimited point string; entries without a position get their index.

    Order is kept exactly as stored. Raises ValueError on malformed numbers.
    """
    if not text:
        return []
    out: list[Point] = []
    for i, item in enumerate(text.split(",")):
        if ":" in item:
            pos, amp = item.split(":", 1)
            out.append(Point(float(pos), float(amp)))
        else:
            out.append(Point(float(i), float(item)))
    return out


@dataclass
class Reading:
    """One spectral measurement: identity, ordered samples and its metadata."""

    sample_id: str
    points: list[Point] = field(default_factory=list)
    sample_type: str = ""
    data_format: str = DEFAULT_FORMAT
    db_id: int | None = None
    metadata: MetadataRecord = field(default_factory=MetadataRecord)

    def __post_init__(self) -> None:
        self.points = [p if isinstance(p, Point) else Point(float(p[0]), float(p[1])) for p in self.points]

    @property
    def key(self) -> tuple[str, str]:
        return (self.sample_id, self.data_format)

    @property
    def positions(self) -> list[float]:
        return [p.position for p in self.points]

    @property
    def amplitudes(self) -> list[float]:
        return [p.amplitude for p in self.points]
