from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _require_int(value: Any, *, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{field_name} must be an integer")
    return value


def _require_number(value: Any, *, field_name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{field_name} must be numeric")
    return float(value)


@dataclass(frozen=True, order=True)
class Cell:
    """Grid cell (i, j); i counts tiles of latitude, j tiles of longitude."""

    i: int
    j: int

    @property
    def key(self) -> str:
        return f"{self.i}:{self.j}"

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cell":
        if not isinstance(data, dict):
            raise ValueError("cell must be an object")
        return cls(
            i=_require_int(data.get("i"), field_name="cell.i"),
            j=_require_int(data.get("j"), field_name="cell.j"),
        )


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float

    def to_dict(self) -> dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LatLng":
        if not isinstance(data, dict):
            raise ValueError("location must be an object")
        return cls(
            lat=_require_number(data.get("lat"), field_name="location.lat"),
            lng=_require_number(data.get("lng"), field_name="location.lng"),
        )


@dataclass(frozen=True)
class CellBounds:
    """Degree box covered by one cell."""

    south: float
    west: float
    north: float
    east: float

    @property
    def center(self) -> LatLng:
        return LatLng(lat=(self.south + self.north) / 2.0, lng=(self.west + self.east) / 2.0)

    def contains(self, point: LatLng) -> bool:
        return self.south <= point.lat < self.north and self.west <= point.lng < self.east
