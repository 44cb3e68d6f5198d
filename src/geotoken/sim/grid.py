from __future__ import annotations

import math
import re
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any

# Canonical keys only, so no two spellings map to the same cell.
CELL_KEY_PATTERN = re.compile(r"(0|-?[1-9][0-9]*),(0|-?[1-9][0-9]*)")


@dataclass(frozen=True, order=True)
class GridCoord:
    """Integer cell coordinate (i, j); i grows northward, j grows eastward."""

    i: int
    j: int

    def to_key(self) -> str:
        return f"{self.i},{self.j}"

    @classmethod
    def from_key(cls, key: str) -> "GridCoord":
        if not isinstance(key, str):
            raise ValueError("cell key must be a string")
        match = CELL_KEY_PATTERN.fullmatch(key)
        if match is None:
            raise ValueError(f"invalid cell key: {key!r}")
        return cls(i=int(match.group(1)), j=int(match.group(2)))

    def to_dict(self) -> dict[str, int]:
        return {"i": self.i, "j": self.j}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GridCoord":
        return cls(i=int(data["i"]), j=int(data["j"]))


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class GeoBounds:
    south_west: LatLng
    north_east: LatLng

    def __post_init__(self) -> None:
        if self.south_west.lat > self.north_east.lat or self.south_west.lng > self.north_east.lng:
            raise ValueError("south_west must not lie north or east of north_east")

    def contains(self, point: LatLng) -> bool:
        return (
            self.south_west.lat <= point.lat <= self.north_east.lat
            and self.south_west.lng <= point.lng <= self.north_east.lng
        )

    def intersects(self, other: "GeoBounds") -> bool:
        return (
            other.north_east.lat >= self.south_west.lat
            and other.south_west.lat <= self.north_east.lat
            and other.north_east.lng >= self.south_west.lng
            and other.south_west.lng <= self.north_east.lng
        )

    @property
    def center(self) -> LatLng:
        return LatLng(
            (self.south_west.lat + self.north_east.lat) / 2.0,
            (self.south_west.lng + self.north_east.lng) / 2.0,
        )


@dataclass(frozen=True)
class CellRect:
    """Inclusive rectangle of grid coordinates."""

    min_i: int
    max_i: int
    min_j: int
    max_j: int

    def contains(self, coord: GridCoord) -> bool:
        return self.min_i <= coord.i <= self.max_i and self.min_j <= coord.j <= self.max_j

    def iter_coords(self) -> Iterator[GridCoord]:
        for i in range(self.min_i, self.max_i + 1):
            for j in range(self.min_j, self.max_j + 1):
                yield GridCoord(i, j)

    def __len__(self) -> int:
        if self.max_i < self.min_i or self.max_j < self.min_j:
            return 0
        return (self.max_i - self.min_i + 1) * (self.max_j - self.min_j + 1)


def to_cell(lat: float, lng: float, *, origin: LatLng, tile_size: float) -> GridCoord:
    return GridCoord(
        i=math.floor((lat - origin.lat) / tile_size),
        j=math.floor((lng - origin.lng) / tile_size),
    )


def cell_bounds(coord: GridCoord, *, origin: LatLng, tile_size: float) -> GeoBounds:
    return GeoBounds(
        south_west=LatLng(origin.lat + coord.i * tile_size, origin.lng + coord.j * tile_size),
        north_east=LatLng(origin.lat + (coord.i + 1) * tile_size, origin.lng + (coord.j + 1) * tile_size),
    )


def cell_center(coord: GridCoord, *, origin: LatLng, tile_size: float) -> LatLng:
    return LatLng(origin.lat + (coord.i + 0.5) * tile_size, origin.lng + (coord.j + 0.5) * tile_size)


def chebyshev_distance(a: GridCoord, b: GridCoord) -> int:
    return max(abs(a.i - b.i), abs(a.j - b.j))


def neighborhood_rect(center: GridCoord, radius: int) -> CellRect:
    if radius < 0:
        raise ValueError("radius must be >= 0")
    return CellRect(
        min_i=center.i - radius,
        max_i=center.i + radius,
        min_j=center.j - radius,
        max_j=center.j + radius,
    )


def iter_neighborhood(center: GridCoord, radius: int) -> Iterator[GridCoord]:
    """Every coordinate within Chebyshev ``radius`` of ``center``, row-major."""
    return neighborhood_rect(center, radius).iter_coords()


def covering_rect(bounds: GeoBounds, *, origin: LatLng, tile_size: float, padding: int = 0) -> CellRect:
    """Cells overlapping ``bounds``, grown by ``padding`` cells on every side."""
    if padding < 0:
        raise ValueError("padding must be >= 0")
    south_west = to_cell(bounds.south_west.lat, bounds.south_west.lng, origin=origin, tile_size=tile_size)
    north_east = to_cell(bounds.north_east.lat, bounds.north_east.lng, origin=origin, tile_size=tile_size)
    return CellRect(
        min_i=south_west.i - padding,
        max_i=north_east.i + padding,
        min_j=south_west.j - padding,
        max_j=north_east.j + padding,
    )
