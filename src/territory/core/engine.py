"""
Territory grid pipeline.

One regeneration runs generate -> merge -> assign -> prune over explicit
snapshots and returns a new GridCellSet. The engine holds configuration and
the pure components only; the caller owns the current cell set.
"""

from __future__ import annotations

import logging

import numpy as np

from territory.core.cell_generator import ViewportCellGenerator
from territory.core.cell_state import merge
from territory.core.config import GridConfig
from territory.core.eviction import EvictionPolicy
from territory.core.hex_grid import AxialCoord, GridCellSet, Viewport
from territory.core.occupancy import TerritoryRequest, TerritoryResponse, apply_remote
from territory.core.projection import CoordinateProjector
from territory.core.trail_generators import apply_procedural

logger = logging.getLogger(__name__)


class TerritoryEngine:
    """Runs the cell pipeline for a viewport.

    Attributes:
        config: The GridConfig in effect.
        projector: Coordinate projection shared by every stage.
        generator: Viewport cell enumeration.
        eviction: Capacity bound.
    """

    def __init__(self, config: GridConfig | None = None) -> None:
        self.config = config or GridConfig()
        self.config.validate()
        self.projector = CoordinateProjector(self.config.origin, self.config.side_length_m)
        self.generator = ViewportCellGenerator(self.projector)
        self.eviction = EvictionPolicy(self.projector)

    def regenerate(
        self,
        viewport: Viewport,
        existing: GridCellSet | None = None,
        response: TerritoryResponse | None = None,
        procedural: bool = False,
        rng: np.random.Generator | None = None,
        seed: int | None = None,
    ) -> GridCellSet:
        """Produce the next cell set for ``viewport``.

        Args:
            viewport: The region being shown.
            existing: The caller's current set (empty when None).
            response: Remote claims to apply as an overwrite.
            procedural: Lay down generated demo claims when no response is given.
            rng: Random source for procedural claims.
            seed: Seed for procedural claims when ``rng`` is not given.

        Returns:
            A new GridCellSet, or ``existing`` unchanged for a degenerate
            viewport.
        """
        existing = existing if existing is not None else GridCellSet()
        if viewport.is_degenerate:
            logger.debug("Degenerate viewport %s; keeping %d cells", viewport, len(existing))
            return existing

        fresh = self.generator.generate(viewport, self.config.expansion_factor)
        cells = merge(existing, fresh)

        if response is not None:
            cells = apply_remote(cells, response)
        elif procedural:
            center = self.center_cell(viewport)
            if seed is None:
                seed = self.config.random_seed
            cells = apply_procedural(cells, center, rng=rng, seed=seed)

        return self.eviction.prune(
            cells,
            viewport.center,
            self.config.max_cells,
            protect_occupied=self.config.protect_occupied,
        )

    def center_cell(self, viewport: Viewport) -> AxialCoord:
        return self.projector.geo_to_axial(viewport.center)

    def build_request(self, viewport: Viewport) -> TerritoryRequest:
        """Region lookup covering the expanded viewport."""
        center = self.center_cell(viewport)
        return TerritoryRequest(
            center_q=center.q,
            center_r=center.r,
            radius=self.generator.request_radius(viewport, self.config.expansion_factor),
            expansion_factor=self.config.expansion_factor,
        )

    def should_regenerate(self, current: Viewport, previous: Viewport | None) -> bool:
        """Whether ``current`` differs enough from ``previous`` to rebuild.

        The center must move, or a span change, by more than a fraction of
        the smaller current span. Small map jitter is ignored.
        """
        if previous is None:
            return True
        if current.is_degenerate:
            return False
        if previous.is_degenerate:
            return True

        reference = min(current.span_lat, current.span_lon)
        center_limit = reference * self.config.center_threshold
        span_limit = reference * self.config.span_threshold

        lat_diff = abs(current.center.latitude - previous.center.latitude)
        lon_diff = abs(current.center.longitude - previous.center.longitude)
        span_lat_diff = abs(current.span_lat - previous.span_lat)
        span_lon_diff = abs(current.span_lon - previous.span_lon)

        return (
            lat_diff > center_limit
            or lon_diff > center_limit
            or span_lat_diff > span_limit
            or span_lon_diff > span_limit
        )
