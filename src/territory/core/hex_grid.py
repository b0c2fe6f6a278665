"""
Hex grid data model for the territory map.

Cells live in an unbounded flat-top axial (q, r) grid anchored at a fixed
geographic origin. Cube coordinates are derived as (q, -q-r, r).

All values here are immutable: operations on a GridCellSet return a new
set, and a GridCell's occupant is changed by building a replacement cell.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from territory.core.projection import CoordinateProjector

MIN_DENSITY = 1
MAX_DENSITY = 5


def clamp_density(value: int | float) -> int:
    """Clamp a density value into [MIN_DENSITY, MAX_DENSITY]."""
    if isinstance(value, float) and math.isnan(value):
        return MIN_DENSITY
    return int(max(MIN_DENSITY, min(MAX_DENSITY, round(value))))


class Tribe(str, Enum):
    """Tribes known to the game client."""

    RED = "red"
    YELLOW = "yellow"
    BLUE = "blue"

    @property
    def display_name(self) -> str:
        return _TRIBE_NAMES[self]


_TRIBE_NAMES: dict[Tribe, str] = {
    Tribe.RED: "Red-eared slider",
    Tribe.YELLOW: "Desert tortoise",
    Tribe.BLUE: "Greek tortoise",
}


class HexDirection(Enum):
    """The six axial neighbor directions of a flat-top grid.

    Increasing r moves north; increasing q moves east (and half a row north).
    """

    NORTH = (0, 1)
    NORTHEAST = (1, 0)
    SOUTHEAST = (1, -1)
    SOUTH = (0, -1)
    SOUTHWEST = (-1, 0)
    NORTHWEST = (-1, 1)

    @property
    def delta(self) -> tuple[int, int]:
        return self.value

    @property
    def opposite(self) -> HexDirection:
        dq, dr = self.value
        return HexDirection((-dq, -dr))

    def flanks(self) -> tuple[HexDirection, HexDirection]:
        """The two directions 60 degrees either side of this one."""
        order = list(HexDirection)
        i = order.index(self)
        return order[(i + 1) % 6], order[(i - 1) % 6]


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 position in degrees."""

    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        return not (math.isnan(self.latitude) or math.isnan(self.longitude))

    def to_dict(self) -> dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True, order=True)
class AxialCoord:
    """Axial address of a cell. Canonical, hashable key of the grid."""

    q: int
    r: int

    @property
    def cube_coords(self) -> tuple[int, int, int]:
        """Cube coordinates derived from axial. Satisfies x + y + z = 0."""
        return (self.q, -self.q - self.r, self.r)

    def offset(self, direction: HexDirection, steps: int = 1) -> AxialCoord:
        dq, dr = direction.delta
        return AxialCoord(self.q + dq * steps, self.r + dr * steps)

    def neighbors(self) -> list[AxialCoord]:
        """All six adjacent coordinates."""
        return [self.offset(d) for d in HexDirection]

    def distance(self, other: AxialCoord) -> int:
        """Hex distance: max absolute difference across the cube axes."""
        ax, ay, az = self.cube_coords
        bx, by, bz = other.cube_coords
        return max(abs(ax - bx), abs(ay - by), abs(az - bz))


@dataclass(frozen=True)
class Occupant:
    """A tribe's claim on a cell.

    Attributes:
        tribe_id: Identifier of the claiming tribe (see ``Tribe``).
        density: Claim intensity, always within [1, 5].
        claimed_at: When the claim was last updated.
    """

    tribe_id: str
    density: int
    claimed_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "density", clamp_density(self.density))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tribe_id": self.tribe_id,
            "density": self.density,
            "claimed_at": self.claimed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Occupant:
        return cls(
            tribe_id=d["tribe_id"],
            density=d.get("density", MIN_DENSITY),
            claimed_at=datetime.fromisoformat(d["claimed_at"]),
        )


@dataclass(frozen=True)
class GridCell:
    """A single hex cell: its address and an optional claim."""

    coord: AxialCoord
    occupant: Occupant | None = None

    @property
    def q(self) -> int:
        return self.coord.q

    @property
    def r(self) -> int:
        return self.coord.r

    @property
    def is_claimed(self) -> bool:
        return self.occupant is not None

    def center(self, projector: CoordinateProjector) -> GeoPoint:
        """Geographic center, derived from the address on every call."""
        return projector.axial_to_geo(self.coord.q, self.coord.r)

    def with_occupant(self, occupant: Occupant | None) -> GridCell:
        return replace(self, occupant=occupant)

    def to_dict(self) -> dict[str, Any]:
        return {
            "q": self.q,
            "r": self.r,
            "occupant": self.occupant.to_dict() if self.occupant else None,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GridCell:
        occ = d.get("occupant")
        return cls(
            coord=AxialCoord(int(d["q"]), int(d["r"])),
            occupant=Occupant.from_dict(occ) if occ else None,
        )


@dataclass(frozen=True)
class Viewport:
    """The visible map region: a center and an angular span in degrees."""

    center: GeoPoint
    span_lat: float
    span_lon: float

    @property
    def is_degenerate(self) -> bool:
        """True for non-positive or NaN spans and NaN centers."""
        if not self.center.is_valid:
            return True
        # NaN comparisons are False, so "not > 0" catches NaN too.
        return not (self.span_lat > 0 and self.span_lon > 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "center": self.center.to_dict(),
            "span_lat": self.span_lat,
            "span_lon": self.span_lon,
        }


class GridCellSet(Mapping[AxialCoord, GridCell]):
    """An immutable mapping from AxialCoord to GridCell.

    Keys are unique and carry no ordering guarantee. Equality compares the
    mapped cells, so two sets built in different orders are equal.
    """

    __slots__ = ("_cells",)

    def __init__(self, cells: Iterable[GridCell] = ()) -> None:
        self._cells: dict[AxialCoord, GridCell] = {c.coord: c for c in cells}

    @classmethod
    def _wrap(cls, cells: dict[AxialCoord, GridCell]) -> GridCellSet:
        """Adopt an already-built dict without copying."""
        obj = cls.__new__(cls)
        obj._cells = cells
        return obj

    def __getitem__(self, key: AxialCoord) -> GridCell:
        return self._cells[key]

    def __iter__(self) -> Iterator[AxialCoord]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    def __repr__(self) -> str:
        return f"GridCellSet(cells={len(self)}, occupied={self.occupied_count})"

    def cells(self) -> list[GridCell]:
        return list(self._cells.values())

    def get_cell(self, q: int, r: int) -> GridCell | None:
        """Retrieve a cell by coordinates, or None if not tracked."""
        return self._cells.get(AxialCoord(q, r))

    def occupied(self) -> list[GridCell]:
        return [c for c in self._cells.values() if c.is_claimed]

    def unoccupied(self) -> list[GridCell]:
        return [c for c in self._cells.values() if not c.is_claimed]

    @property
    def occupied_count(self) -> int:
        return sum(1 for c in self._cells.values() if c.is_claimed)

    def replace_cells(self, updated: Iterable[GridCell]) -> GridCellSet:
        """New set where the given cells replace entries with the same key.

        Cells whose coordinate is not already tracked are ignored.
        """
        cells = dict(self._cells)
        for cell in updated:
            if cell.coord in cells:
                cells[cell.coord] = cell
        return GridCellSet._wrap(cells)

    # ---- Serialization ----

    def to_dict(self) -> dict[str, Any]:
        return {"cells": [c.to_dict() for c in self._cells.values()]}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GridCellSet:
        return cls(GridCell.from_dict(c) for c in d.get("cells", []))
