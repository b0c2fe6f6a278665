"""
Claim assignment from the remote territory service.

Unlike ``cell_state.merge``, remote data is authoritative: every entry in a
response replaces the local claim for its coordinate, including clearing
it when ``occupied_by`` is null. Entries for coordinates the client is not
tracking are ignored.

The request/response types double as the wire format (camelCase JSON).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from territory.core.hex_grid import (
    MIN_DENSITY,
    AxialCoord,
    GridCell,
    GridCellSet,
    Occupant,
    clamp_density,
)

logger = logging.getLogger(__name__)


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime, epoch seconds, or an ISO-8601 string (UTC if naive)."""
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        try:
            ts = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"Timestamp out of range: {value!r}") from exc
    elif isinstance(value, str):
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _pick(d: dict[str, Any], camel: str, snake: str, default: Any = None) -> Any:
    if camel in d:
        return d[camel]
    return d.get(snake, default)


@dataclass(frozen=True)
class TerritoryRequest:
    """Region lookup sent to the territory service."""

    center_q: int
    center_r: int
    radius: int
    expansion_factor: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "centerQ": self.center_q,
            "centerR": self.center_r,
            "radius": self.radius,
            "expansionFactor": self.expansion_factor,
        }


@dataclass(frozen=True)
class RemoteCell:
    """One cell's state as reported by the territory service."""

    q: int
    r: int
    occupied_by: str | None
    density: int | None
    last_updated: datetime

    @property
    def coord(self) -> AxialCoord:
        return AxialCoord(self.q, self.r)

    def to_occupant(self) -> Occupant | None:
        """The claim this entry describes, or None for a cleared cell."""
        if self.occupied_by is None:
            return None
        density = MIN_DENSITY if self.density is None else self.density
        return Occupant(
            tribe_id=self.occupied_by,
            density=clamp_density(density),
            claimed_at=self.last_updated,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "q": self.q,
            "r": self.r,
            "occupiedBy": self.occupied_by,
            "density": self.density,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RemoteCell:
        """Parse one wire cell.

        Raises:
            ValueError: If any field has the wrong shape.
        """
        if not isinstance(d, dict):
            raise ValueError(f"Remote cell must be an object, got {type(d).__name__}")
        try:
            q = int(d["q"])
            r = int(d["r"])
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"Remote cell missing valid q/r: {d!r}") from exc

        occupied_by = _pick(d, "occupiedBy", "occupied_by")
        if occupied_by is not None and not isinstance(occupied_by, str):
            raise ValueError(f"Remote cell occupiedBy must be a string: {occupied_by!r}")
        density = d.get("density")
        try:
            density = None if density is None else int(density)
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"Remote cell density is not a number: {density!r}") from exc
        updated = _pick(d, "lastUpdated", "last_updated")
        return cls(
            q=q,
            r=r,
            occupied_by=occupied_by,
            density=density,
            last_updated=(
                parse_timestamp(updated) if updated is not None
                else datetime.now(timezone.utc)
            ),
        )


@dataclass(frozen=True)
class RegionInfo:
    """The region a response covers."""

    center_q: int
    center_r: int
    radius: int

    def to_dict(self) -> dict[str, int]:
        return {"centerQ": self.center_q, "centerR": self.center_r, "radius": self.radius}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> RegionInfo:
        if not isinstance(d, dict):
            raise ValueError(f"Territory region must be an object, got {type(d).__name__}")
        try:
            return cls(
                center_q=int(_pick(d, "centerQ", "center_q", 0)),
                center_r=int(_pick(d, "centerR", "center_r", 0)),
                radius=int(d.get("radius", 0)),
            )
        except (TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"Territory region is malformed: {d!r}") from exc


@dataclass(frozen=True)
class TerritoryResponse:
    """Cells and region returned for a TerritoryRequest."""

    cells: list[RemoteCell] = field(default_factory=list)
    region: RegionInfo = field(default_factory=lambda: RegionInfo(0, 0, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "cells": [c.to_dict() for c in self.cells],
            "region": self.region.to_dict(),
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TerritoryResponse:
        """Parse a wire payload.

        Raises:
            ValueError: If the payload or any cell entry is malformed.
        """
        if not isinstance(d, dict):
            raise ValueError(f"Territory response must be an object, got {type(d).__name__}")
        raw_cells = d.get("cells", [])
        if not isinstance(raw_cells, list):
            raise ValueError("Territory response 'cells' must be a list")
        return cls(
            cells=[RemoteCell.from_dict(c) for c in raw_cells],
            region=RegionInfo.from_dict(d.get("region") or {}),
        )


def apply_claims(cells: GridCellSet, claims: Iterable[RemoteCell]) -> GridCellSet:
    """Overwrite the claims of tracked cells with ``claims``.

    Later entries for the same coordinate win. Untracked coordinates are
    skipped.

    Returns:
        A new GridCellSet; ``cells`` is not modified.
    """
    updates: dict[AxialCoord, GridCell] = {}
    ignored = 0
    for claim in claims:
        coord = claim.coord
        if coord not in cells:
            ignored += 1
            continue
        updates[coord] = GridCell(coord, claim.to_occupant())
    if ignored:
        logger.debug("Ignored %d claims for untracked cells", ignored)
    return cells.replace_cells(updates.values())


def apply_remote(cells: GridCellSet, response: TerritoryResponse) -> GridCellSet:
    """Apply a territory service response as an authoritative overwrite."""
    updated = apply_claims(cells, response.cells)
    logger.debug(
        "Applied %d remote cells around (%d, %d); %d cells now claimed",
        len(response.cells), response.region.center_q, response.region.center_r,
        updated.occupied_count,
    )
    return updated
