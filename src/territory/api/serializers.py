"""
Serializers for converting grid objects to JSON-safe dicts for renderers.
"""

from __future__ import annotations

from typing import Any

from territory.core.hex_grid import GeoPoint, GridCell, GridCellSet
from territory.core.projection import CoordinateProjector


def _point(p: GeoPoint) -> list[float]:
    """[lat, lon] pair, rounded to ~1 cm."""
    return [round(p.latitude, 7), round(p.longitude, 7)]


def serialize_cell(cell: GridCell, projector: CoordinateProjector) -> dict[str, Any]:
    """Cell with its derived center, ready to draw."""
    occ = cell.occupant
    return {
        "q": cell.q,
        "r": cell.r,
        "center": _point(cell.center(projector)),
        "occupied_by": occ.tribe_id if occ else None,
        "density": occ.density if occ else None,
        "claimed_at": occ.claimed_at.isoformat() if occ else None,
    }


def serialize_cell_detail(
    cell: GridCell, cells: GridCellSet, projector: CoordinateProjector
) -> dict[str, Any]:
    """Cell plus polygon vertices and tracked neighbors."""
    neighbors = []
    for coord in cell.coord.neighbors():
        neighbor = cells.get(coord)
        if neighbor is not None:
            neighbors.append({
                "q": neighbor.q,
                "r": neighbor.r,
                "occupied_by": neighbor.occupant.tribe_id if neighbor.occupant else None,
            })
    return {
        "cell": serialize_cell(cell, projector),
        "vertices": [_point(v) for v in projector.cell_vertices(cell.coord)],
        "neighbors": neighbors,
    }


def serialize_cell_set(cells: GridCellSet, projector: CoordinateProjector) -> dict[str, Any]:
    """All cells plus per-tribe counts."""
    tribe_counts: dict[str, int] = {}
    for cell in cells.occupied():
        tribe_counts[cell.occupant.tribe_id] = tribe_counts.get(cell.occupant.tribe_id, 0) + 1
    return {
        "cells": [serialize_cell(c, projector) for c in cells.values()],
        "stats": {
            "total_cells": len(cells),
            "occupied_cells": sum(tribe_counts.values()),
            "tribe_counts": tribe_counts,
        },
    }
