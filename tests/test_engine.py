"""Integration tests for TerritoryEngine."""

from datetime import datetime, timezone

import numpy as np
import pytest

from territory.core.config import GridConfig
from territory.core.engine import TerritoryEngine
from territory.core.hex_grid import AxialCoord, GeoPoint, GridCell, GridCellSet, Occupant, Viewport
from territory.core.occupancy import RegionInfo, RemoteCell, TerritoryResponse

T0 = datetime(2025, 5, 1, tzinfo=timezone.utc)


def _viewport(lat=37.5665, lon=126.9780, span=0.004) -> Viewport:
    return Viewport(GeoPoint(lat, lon), span, span)


class TestRegenerate:
    def test_first_run_within_capacity(self, engine):
        cells = engine.regenerate(_viewport())
        assert 0 < len(cells) <= engine.config.max_cells
        assert cells.occupied_count == 0

    def test_large_viewport_pruned_to_capacity(self):
        engine = TerritoryEngine(GridConfig(max_cells=300, demo_mode=False))
        cells = engine.regenerate(engine.config.default_viewport())
        assert len(cells) == 300

    def test_capacity_holds_across_pans(self, engine):
        cells = GridCellSet()
        for step in range(6):
            cells = engine.regenerate(_viewport(lon=126.9780 + step * 0.003, span=0.008), cells)
            assert len(cells) <= engine.config.max_cells

    def test_center_cell_tracked(self, engine):
        vp = _viewport()
        cells = engine.regenerate(vp)
        assert engine.center_cell(vp) in cells

    def test_claims_survive_remerge(self, engine):
        vp = _viewport()
        first = engine.regenerate(vp)
        center = engine.center_cell(vp)
        claimed = first.replace_cells([GridCell(center, Occupant("red", 4, T0))])

        again = engine.regenerate(vp, claimed)
        assert again[center].occupant == Occupant("red", 4, T0)

    def test_claims_survive_far_pan(self, engine):
        """Protected claims stay tracked after the viewport moves away."""
        vp = _viewport()
        center = engine.center_cell(vp)
        cells = engine.regenerate(vp).replace_cells([GridCell(center, Occupant("blue", 2, T0))])
        moved = engine.regenerate(_viewport(lat=37.60), cells)
        assert moved[center].is_claimed

    def test_remote_response_applied(self, engine):
        vp = _viewport()
        center = engine.center_cell(vp)
        response = TerritoryResponse(
            cells=[RemoteCell(center.q, center.r, "yellow", 9, T0)],
            region=RegionInfo(center.q, center.r, 10),
        )
        cells = engine.regenerate(vp, response=response)
        assert cells[center].occupant == Occupant("yellow", 5, T0)

    def test_remote_clear_overwrites(self, engine):
        vp = _viewport()
        center = engine.center_cell(vp)
        cells = engine.regenerate(vp).replace_cells([GridCell(center, Occupant("red", 3, T0))])
        response = TerritoryResponse(
            cells=[RemoteCell(center.q, center.r, None, None, T0)],
            region=RegionInfo(center.q, center.r, 10),
        )
        assert not engine.regenerate(vp, cells, response=response)[center].is_claimed

    def test_degenerate_viewport_keeps_existing(self, engine):
        existing = engine.regenerate(_viewport())
        result = engine.regenerate(Viewport(GeoPoint(37.5, 127.0), 0.0, 0.01), existing)
        assert result is existing

    def test_degenerate_viewport_from_empty(self, engine):
        assert len(engine.regenerate(Viewport(GeoPoint(37.5, 127.0), 0.01, 0.0))) == 0

    def test_procedural_claims_reproducible(self, engine):
        vp = _viewport()
        a = engine.regenerate(vp, procedural=True, seed=42)
        b = engine.regenerate(vp, procedural=True, seed=42)
        assert a.occupied_count > 0
        assert {k for k, c in a.items() if c.is_claimed} == {k for k, c in b.items() if c.is_claimed}

    def test_procedural_uses_config_seed(self):
        engine = TerritoryEngine(GridConfig(random_seed=7, demo_mode=False))
        vp = _viewport()
        a = engine.regenerate(vp, procedural=True)
        b = engine.regenerate(vp, procedural=True, rng=np.random.default_rng(7))
        assert {k for k, c in a.items() if c.is_claimed} == {k for k, c in b.items() if c.is_claimed}

    def test_existing_not_mutated(self, engine):
        existing = engine.regenerate(_viewport())
        size = len(existing)
        engine.regenerate(_viewport(lat=37.58), existing)
        assert len(existing) == size

    def test_invalid_config_rejected(self):
        with pytest.raises(ValueError):
            TerritoryEngine(GridConfig(side_length_m=0))


class TestShouldRegenerate:
    def test_first_viewport(self, engine):
        assert engine.should_regenerate(_viewport(), None)

    def test_small_jitter_ignored(self, engine):
        prev = _viewport(span=0.01)
        cur = _viewport(lat=37.5665 + 0.001, span=0.01)
        assert not engine.should_regenerate(cur, prev)

    def test_pan_past_threshold(self, engine):
        """A move of more than 30% of the smaller span triggers a rebuild."""
        prev = _viewport(span=0.01)
        assert engine.should_regenerate(_viewport(lon=126.9780 + 0.0031, span=0.01), prev)
        assert not engine.should_regenerate(_viewport(lon=126.9780 + 0.0029, span=0.01), prev)

    def test_zoom_past_threshold(self, engine):
        prev = _viewport(span=0.01)
        assert engine.should_regenerate(_viewport(span=0.03), prev)
        assert not engine.should_regenerate(_viewport(span=0.012), prev)

    def test_degenerate_current_never_rebuilds(self, engine):
        prev = _viewport()
        cur = Viewport(GeoPoint(10.0, 10.0), 0.0, 0.0)
        assert not engine.should_regenerate(cur, prev)

    def test_from_degenerate_previous(self, engine):
        prev = Viewport(GeoPoint(37.5, 127.0), 0.0, 0.0)
        assert engine.should_regenerate(_viewport(), prev)


class TestBuildRequest:
    def test_centered_on_viewport_cell(self, engine):
        vp = _viewport()
        req = engine.build_request(vp)
        assert AxialCoord(req.center_q, req.center_r) == engine.center_cell(vp)
        assert req.expansion_factor == engine.config.expansion_factor

    def test_radius_covers_viewport(self, engine):
        vp = _viewport(span=0.009)
        req = engine.build_request(vp)
        center = engine.center_cell(vp)
        cells = engine.generator.generate(vp, engine.config.expansion_factor)
        assert all(c.coord.distance(center) <= req.radius for c in cells)

    def test_origin_cell_is_zero(self, engine):
        req = engine.build_request(engine.config.default_viewport())
        assert (req.center_q, req.center_r) == (0, 0)
