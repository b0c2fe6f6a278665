"""
Capacity bound for the tracked cell set.

Claimed cells act as pinned entries: with protection on they are never
evicted, even when they alone exceed the capacity. Unclaimed cells are
evicted furthest-first from the viewport center.
"""

from __future__ import annotations

import logging

import numpy as np

from territory.core.hex_grid import GeoPoint, GridCell, GridCellSet
from territory.core.projection import CoordinateProjector

logger = logging.getLogger(__name__)


class EvictionPolicy:
    """Nearest-wins pruning with an optional pinned class for claimed cells."""

    def __init__(self, projector: CoordinateProjector) -> None:
        self.projector = projector

    def prune(
        self,
        cells: GridCellSet,
        viewport_center: GeoPoint,
        max_count: int,
        protect_occupied: bool = True,
    ) -> GridCellSet:
        """Reduce ``cells`` to at most ``max_count`` entries.

        Args:
            cells: The set to bound.
            viewport_center: Distances are measured from here.
            max_count: Capacity. Exceeded only by claimed cells when protected.
            protect_occupied: Keep every claimed cell regardless of distance.

        Returns:
            The input set itself when already within capacity, otherwise a
            new pruned set.

        Raises:
            ValueError: If ``max_count`` is negative.
        """
        if max_count < 0:
            raise ValueError(f"max_count must be >= 0, got {max_count}")
        if len(cells) <= max_count:
            return cells

        if not protect_occupied:
            kept = self.nearest(cells.cells(), viewport_center, max_count)
            logger.debug(
                "Pruned %d -> %d cells (%d claimed kept, unprotected)",
                len(cells), len(kept), sum(1 for c in kept if c.is_claimed),
            )
            return GridCellSet(kept)

        occupied = cells.occupied()
        unoccupied = cells.unoccupied()
        if len(occupied) > max_count:
            logger.warning(
                "Claimed cells (%d) exceed capacity %d; keeping all of them",
                len(occupied), max_count,
            )
        slots = max(0, max_count - len(occupied))
        kept_free = self.nearest(unoccupied, viewport_center, slots)
        logger.debug(
            "Pruned %d -> %d cells (%d claimed, %d unclaimed)",
            len(cells), len(occupied) + len(kept_free), len(occupied), len(kept_free),
        )
        return GridCellSet(occupied + kept_free)

    def nearest(
        self, cells: list[GridCell], center: GeoPoint, count: int
    ) -> list[GridCell]:
        """The ``count`` cells closest to ``center``.

        Ties are broken by (q, r) ascending so results do not depend on
        input order.
        """
        if count <= 0 or not cells:
            return []
        if count >= len(cells):
            return list(cells)

        cx, cy = self.projector.local_meters(center)
        qs = np.fromiter((c.q for c in cells), dtype=np.int64, count=len(cells))
        rs = np.fromiter((c.r for c in cells), dtype=np.int64, count=len(cells))
        size = self.projector.side_length
        x = size * 1.5 * qs
        y = size * (np.sqrt(3.0) / 2.0 * qs + np.sqrt(3.0) * rs)
        # Distances equal to within a micrometer count as ties.
        dist_sq = np.round((x - cx) ** 2 + (y - cy) ** 2, 6)

        # lexsort sorts by the last key first.
        order = np.lexsort((rs, qs, dist_sq))[:count]
        return [cells[i] for i in order]

    def distance(self, cell: GridCell, center: GeoPoint) -> float:
        """Flat-earth distance in meters from ``center`` to the cell center."""
        return self.projector.distance_meters(cell.center(self.projector), center)
