"""
Viewport cell generation.

Enumerates the cells whose centers fall inside a viewport enlarged by an
expansion factor, so the map has a margin of cells ready before the user
pans into it. Result size is not capped here; EvictionPolicy bounds it.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from territory.core.hex_grid import AxialCoord, GeoPoint, GridCell, Viewport
from territory.core.projection import METERS_PER_DEGREE, SQRT3, CoordinateProjector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoundingBox:
    """A lat/lon rectangle in degrees."""

    south: float
    north: float
    west: float
    east: float

    @property
    def north_west(self) -> GeoPoint:
        return GeoPoint(self.north, self.west)

    @property
    def south_east(self) -> GeoPoint:
        return GeoPoint(self.south, self.east)

    def contains(self, point: GeoPoint) -> bool:
        return (
            self.south <= point.latitude <= self.north
            and self.west <= point.longitude <= self.east
        )


class ViewportCellGenerator:
    """Builds unoccupied GridCells covering an expanded viewport."""

    def __init__(self, projector: CoordinateProjector) -> None:
        self.projector = projector

    def expanded_bounds(self, viewport: Viewport, expansion_factor: float) -> BoundingBox:
        """Viewport box scaled by ``expansion_factor`` about its center.

        The span is scaled in meters; longitude uses the viewport center's
        latitude for the meters/degree conversion both ways.
        """
        center = viewport.center
        lon_scale = METERS_PER_DEGREE * math.cos(math.radians(center.latitude))

        half_lat_m = viewport.span_lat * METERS_PER_DEGREE * expansion_factor / 2.0
        half_lon_m = viewport.span_lon * lon_scale * expansion_factor / 2.0

        return BoundingBox(
            south=center.latitude - half_lat_m / METERS_PER_DEGREE,
            north=center.latitude + half_lat_m / METERS_PER_DEGREE,
            west=center.longitude - half_lon_m / lon_scale,
            east=center.longitude + half_lon_m / lon_scale,
        )

    def generate(self, viewport: Viewport, expansion_factor: float = 1.5) -> list[GridCell]:
        """Every cell whose center lies in the expanded viewport box.

        Args:
            viewport: The visible map region.
            expansion_factor: Span multiplier, must be >= 1.0.

        Returns:
            Unoccupied cells; empty for a degenerate viewport.

        Raises:
            ValueError: If ``expansion_factor`` is below 1.0.
        """
        if math.isnan(expansion_factor) or viewport.is_degenerate:
            return []
        if expansion_factor < 1.0:
            raise ValueError(f"expansion_factor must be >= 1.0, got {expansion_factor}")

        box = self.expanded_bounds(viewport, expansion_factor)

        # The axial rectangle spanned by the NW and SE corners covers a
        # parallelogram that contains the box; filter back to the box below.
        nw = self.projector.geo_to_axial(box.north_west)
        se = self.projector.geo_to_axial(box.south_east)
        min_q, max_q = min(nw.q, se.q) - 1, max(nw.q, se.q) + 1
        min_r, max_r = min(nw.r, se.r) - 1, max(nw.r, se.r) + 1

        qs, rs = np.meshgrid(
            np.arange(min_q, max_q + 1),
            np.arange(min_r, max_r + 1),
            indexing="ij",
        )
        qs = qs.ravel()
        rs = rs.ravel()
        lats, lons = self._centers(qs, rs)

        inside = (
            (lats >= box.south) & (lats <= box.north)
            & (lons >= box.west) & (lons <= box.east)
        )
        cells = [
            GridCell(AxialCoord(int(q), int(r)))
            for q, r in zip(qs[inside], rs[inside])
        ]
        logger.debug(
            "Generated %d cells for viewport (%.6f, %.6f) from %d candidates",
            len(cells), viewport.center.latitude, viewport.center.longitude, qs.size,
        )
        return cells

    def _centers(self, qs: np.ndarray, rs: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Vectorized ``axial_to_geo`` over coordinate arrays."""
        size = self.projector.side_length
        origin = self.projector.origin
        x = size * (1.5 * qs)
        y = size * (SQRT3 / 2.0 * qs + SQRT3 * rs)
        lon_scale = METERS_PER_DEGREE * math.cos(math.radians(origin.latitude))
        return origin.latitude + y / METERS_PER_DEGREE, origin.longitude + x / lon_scale

    # ---- Supporting queries ----

    def cells_around(self, center: GeoPoint, radius: int) -> list[GridCell]:
        """All cells within hex distance ``radius`` of the cell containing ``center``."""
        if radius < 0:
            return []
        c = self.projector.geo_to_axial(center)
        cells: list[GridCell] = []
        for dq in range(-radius, radius + 1):
            r_lo = max(-radius, -dq - radius)
            r_hi = min(radius, -dq + radius)
            for dr in range(r_lo, r_hi + 1):
                cells.append(GridCell(AxialCoord(c.q + dq, c.r + dr)))
        return cells

    def request_radius(self, viewport: Viewport, expansion_factor: float) -> int:
        """Hex radius a remote lookup needs to cover the expanded viewport.

        Half the larger expanded side in cell widths, plus a margin of five.
        """
        if viewport.is_degenerate:
            return 0
        lat_m = viewport.span_lat * METERS_PER_DEGREE
        lon_m = viewport.span_lon * METERS_PER_DEGREE * math.cos(
            math.radians(viewport.center.latitude)
        )
        max_delta = max(lat_m, lon_m) * expansion_factor
        return int(max_delta / (self.projector.side_length * 2)) + 5
