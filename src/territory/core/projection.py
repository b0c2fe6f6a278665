"""
Geographic <-> axial projection for the territory grid.

Uses an equirectangular approximation around a fixed origin: latitude
degrees scale by a constant, longitude degrees additionally by the cosine
of the origin latitude. Cells are flat-top hexagons with side length S.
"""

from __future__ import annotations

import math

from territory.core.hex_grid import AxialCoord, GeoPoint

# Meters per degree of latitude.
METERS_PER_DEGREE = 111320.0

SQRT3 = math.sqrt(3.0)


def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero.

    ``round()`` uses banker's rounding; cell addresses must not depend on
    whether the integer part is even.
    """
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


class CoordinateProjector:
    """Pure conversions between GeoPoint and axial cell addresses.

    Attributes:
        origin: GeoPoint mapped to cell (0, 0).
        side_length: Hexagon side length (and circumradius) in meters.
    """

    def __init__(self, origin: GeoPoint, side_length: float = 20.0) -> None:
        if not side_length > 0:
            raise ValueError(f"side_length must be positive, got {side_length}")
        self.origin = origin
        self.side_length = side_length
        self._lon_scale = METERS_PER_DEGREE * math.cos(math.radians(origin.latitude))

    def __repr__(self) -> str:
        return (
            f"CoordinateProjector(origin=({self.origin.latitude}, "
            f"{self.origin.longitude}), side_length={self.side_length})"
        )

    # ---- Planar helpers ----

    def local_meters(
        self, point: GeoPoint, reference: GeoPoint | None = None
    ) -> tuple[float, float]:
        """Planar (x east, y north) offset of ``point`` from ``reference``.

        Longitude is always scaled at the origin latitude so every distance
        computed through the projector is consistent with cell placement.
        """
        ref = reference or self.origin
        x = (point.longitude - ref.longitude) * self._lon_scale
        y = (point.latitude - ref.latitude) * METERS_PER_DEGREE
        return x, y

    def distance_meters(self, a: GeoPoint, b: GeoPoint) -> float:
        """Flat-earth distance between two points."""
        x, y = self.local_meters(a, b)
        return math.hypot(x, y)

    def fractional_axial(self, point: GeoPoint) -> tuple[float, float]:
        """Unrounded axial position of a point."""
        x, y = self.local_meters(point)
        size = self.side_length
        q = (2.0 / 3.0 * x) / size
        r = (-1.0 / 3.0 * x + SQRT3 / 3.0 * y) / size
        return q, r

    # ---- Projection ----

    def geo_to_axial(self, point: GeoPoint) -> AxialCoord:
        """Address of the cell whose center is nearest ``point``."""
        q, r = self.fractional_axial(point)
        return AxialCoord(round_half_away(q), round_half_away(r))

    def axial_to_geo(self, q: int, r: int) -> GeoPoint:
        """Geographic center of cell (q, r)."""
        size = self.side_length
        x = size * (3.0 / 2.0 * q)
        y = size * (SQRT3 / 2.0 * q + SQRT3 * r)
        return GeoPoint(
            latitude=self.origin.latitude + y / METERS_PER_DEGREE,
            longitude=self.origin.longitude + x / self._lon_scale,
        )

    def cell_center(self, coord: AxialCoord) -> GeoPoint:
        return self.axial_to_geo(coord.q, coord.r)

    def hex_vertices(
        self, center: GeoPoint, side_length: float | None = None
    ) -> list[GeoPoint]:
        """Six polygon vertices around ``center``.

        Vertex 0 lies due east; the rest follow counter-clockwise at 60
        degree steps, the same orientation for every cell.
        """
        size = self.side_length if side_length is None else side_length
        lon_scale = METERS_PER_DEGREE * math.cos(math.radians(center.latitude))
        vertices: list[GeoPoint] = []
        for i in range(6):
            angle = math.radians(60.0 * i)
            vertices.append(
                GeoPoint(
                    latitude=center.latitude + size * math.sin(angle) / METERS_PER_DEGREE,
                    longitude=center.longitude + size * math.cos(angle) / lon_scale,
                )
            )
        return vertices

    def cell_vertices(self, coord: AxialCoord) -> list[GeoPoint]:
        """Polygon of cell ``coord`` for renderers."""
        return self.hex_vertices(self.cell_center(coord))
