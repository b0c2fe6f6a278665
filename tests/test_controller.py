"""
Tests for the viewport controller.

Covers debouncing, stale-result discard, timeout and failure fallback,
hysteresis and pushed responses. Coroutines are driven with asyncio.run.
"""

import asyncio
import logging
from datetime import datetime, timezone

import httpx
import pytest

from territory.core.config import GridConfig
from territory.core.controller import ViewportController
from territory.core.engine import TerritoryEngine
from territory.core.hex_grid import GeoPoint, GridCell, Occupant, Viewport
from territory.core.occupancy import RegionInfo, RemoteCell, TerritoryRequest, TerritoryResponse
from territory.core.trail_generators import ProceduralOccupancy
from territory.remote.client import (
    HttpTerritoryClient,
    ProceduralTerritoryClient,
    TerritoryClient,
    TerritoryUnavailableError,
)

T0 = datetime(2025, 5, 1, tzinfo=timezone.utc)


def _viewport(lat=37.5665, lon=126.9780, span=0.004) -> Viewport:
    return Viewport(GeoPoint(lat, lon), span, span)


def _make_engine(**overrides) -> TerritoryEngine:
    return TerritoryEngine(GridConfig(demo_mode=False, **overrides))


class RecordingClient(TerritoryClient):
    """Claims the requested center cell after an optional delay."""

    source = "test"

    def __init__(self, delay: float = 0.0, tribe: str = "red") -> None:
        self.delay = delay
        self.tribe = tribe
        self.requests: list[TerritoryRequest] = []
        self.closed = False

    async def fetch(self, request: TerritoryRequest) -> TerritoryResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        return TerritoryResponse(
            cells=[RemoteCell(request.center_q, request.center_r, self.tribe, 3, T0)],
            region=RegionInfo(request.center_q, request.center_r, request.radius),
        )

    async def aclose(self) -> None:
        self.closed = True


class FailingClient(TerritoryClient):
    source = "test"

    async def fetch(self, request: TerritoryRequest) -> TerritoryResponse:
        raise TerritoryUnavailableError("service down")


class TestRefresh:
    def test_commits_result(self):
        async def scenario():
            controller = ViewportController(_make_engine(), RecordingClient())
            vp = _viewport()
            cells = await controller.refresh(vp)
            return controller, vp, cells

        controller, vp, cells = asyncio.run(scenario())
        assert controller.cells is cells
        assert controller.viewport == vp
        assert controller.runs == 1
        assert cells[controller.engine.center_cell(vp)].occupant.tribe_id == "red"

    def test_without_client_has_no_claims(self):
        async def scenario():
            controller = ViewportController(_make_engine())
            return await controller.refresh(_viewport())

        cells = asyncio.run(scenario())
        assert len(cells) > 0
        assert cells.occupied_count == 0

    def test_small_move_skipped(self):
        async def scenario():
            controller = ViewportController(_make_engine(), RecordingClient())
            await controller.refresh(_viewport())
            await controller.refresh(_viewport(lat=37.5665 + 0.0001))
            return controller

        controller = asyncio.run(scenario())
        assert controller.runs == 1
        assert controller.skipped == 1
        assert len(controller.client.requests) == 1

    def test_force_bypasses_hysteresis(self):
        async def scenario():
            controller = ViewportController(_make_engine(), RecordingClient())
            await controller.refresh(_viewport())
            await controller.refresh(_viewport(), force=True)
            return controller

        controller = asyncio.run(scenario())
        assert controller.runs == 2
        assert controller.skipped == 0

    def test_procedural_client(self):
        async def scenario():
            client = ProceduralTerritoryClient(ProceduralOccupancy(seed=42))
            controller = ViewportController(_make_engine(), client)
            return await controller.refresh(_viewport())

        assert asyncio.run(scenario()).occupied_count > 0


class TestFallback:
    def test_timeout_keeps_previous_set(self, caplog):
        async def scenario():
            controller = ViewportController(
                _make_engine(), RecordingClient(delay=1.0), timeout_seconds=0.05,
            )
            before = controller.cells
            result = await controller.refresh(_viewport())
            return controller, before, result

        with caplog.at_level(logging.WARNING, logger="territory.core.controller"):
            controller, before, result = asyncio.run(scenario())
        assert result is before
        assert controller.fallbacks == 1
        assert controller.runs == 0
        assert controller.viewport is None
        assert "timed out" in caplog.text

    def test_unavailable_keeps_previous_set(self):
        async def scenario():
            engine = _make_engine()
            seeded = engine.regenerate(_viewport()).replace_cells([
                GridCell(engine.center_cell(_viewport()), Occupant("blue", 2, T0)),
            ])
            controller = ViewportController(engine, FailingClient(), cells=seeded)
            result = await controller.refresh(_viewport(lat=37.59))
            return controller, seeded, result

        controller, seeded, result = asyncio.run(scenario())
        assert result is seeded
        assert controller.cells is seeded
        assert controller.fallbacks == 1

    def test_recovers_after_failure(self):
        async def scenario():
            controller = ViewportController(_make_engine(), FailingClient())
            await controller.refresh(_viewport())
            controller.client = RecordingClient()
            await controller.refresh(_viewport())
            return controller

        controller = asyncio.run(scenario())
        assert controller.fallbacks == 1
        assert controller.runs == 1

    @pytest.mark.parametrize("payload", [
        {"cells": [], "region": ["east"]},
        {"cells": [{"q": 0, "r": 0, "occupiedBy": "red", "density": {"level": 2}}]},
        {"cells": [{"q": 0, "r": 0, "occupiedBy": "red", "lastUpdated": 1e20}]},
    ])
    def test_malformed_http_payload_keeps_previous_set(self, payload):
        async def scenario():
            transport = httpx.MockTransport(lambda req: httpx.Response(200, json=payload))
            async with httpx.AsyncClient(transport=transport) as http:
                client = HttpTerritoryClient("https://territory.test", client=http)
                controller = ViewportController(_make_engine(), client)
                before = controller.cells
                result = await controller.refresh(_viewport())
            return controller, before, result

        controller, before, result = asyncio.run(scenario())
        assert result is before
        assert controller.fallbacks == 1
        assert controller.runs == 0


class TestStaleResults:
    def test_superseded_result_discarded(self):
        """A slow run overtaken by a newer request never commits."""

        async def scenario():
            client = RecordingClient(delay=0.1)
            controller = ViewportController(_make_engine(), client)
            first = asyncio.create_task(controller.refresh(_viewport()))
            await asyncio.sleep(0.02)
            second_vp = _viewport(lat=37.58)
            await controller.refresh(second_vp)
            await first
            return controller, second_vp

        controller, second_vp = asyncio.run(scenario())
        assert controller.discarded == 1
        assert controller.runs == 1
        assert controller.viewport == second_vp
        assert len(controller.client.requests) == 2

    def test_single_run_in_flight(self):
        async def scenario():
            active = 0
            peak = 0

            class CountingClient(RecordingClient):
                async def fetch(self, request):
                    nonlocal active, peak
                    active += 1
                    peak = max(peak, active)
                    try:
                        return await super().fetch(request)
                    finally:
                        active -= 1

            controller = ViewportController(_make_engine(), CountingClient(delay=0.02))
            await asyncio.gather(*(
                controller.refresh(_viewport(lat=37.5665 + i * 0.01)) for i in range(4)
            ))
            return peak

        assert asyncio.run(scenario()) == 1


class TestDebounce:
    def test_burst_coalesced(self):
        async def scenario():
            client = RecordingClient()
            controller = ViewportController(_make_engine(), client, debounce_seconds=0.05)
            for i in range(5):
                controller.on_viewport_changed(_viewport(lon=126.9780 + i * 0.01))
                await asyncio.sleep(0.005)
            await controller.wait_idle()
            return controller

        controller = asyncio.run(scenario())
        assert controller.runs == 1
        assert len(controller.client.requests) == 1
        assert controller.viewport == _viewport(lon=126.9780 + 4 * 0.01)

    def test_spaced_events_each_run(self):
        async def scenario():
            controller = ViewportController(
                _make_engine(), RecordingClient(), debounce_seconds=0.01,
            )
            controller.on_viewport_changed(_viewport())
            await controller.wait_idle()
            controller.on_viewport_changed(_viewport(lat=37.60))
            await controller.wait_idle()
            return controller

        assert asyncio.run(scenario()).runs == 2

    def test_new_event_cancels_in_flight_lookup(self):
        async def scenario():
            client = RecordingClient(delay=0.2)
            controller = ViewportController(_make_engine(), client, debounce_seconds=0.0)
            first = controller.on_viewport_changed(_viewport())
            await asyncio.sleep(0.05)
            controller.on_viewport_changed(_viewport(lat=37.60))
            await controller.wait_idle()
            return controller, first

        controller, first = asyncio.run(scenario())
        assert first.cancelled()
        assert controller.runs == 1
        assert controller.viewport == _viewport(lat=37.60)

    def test_wait_idle_follows_rescheduled_run(self):
        """A waiter started before a newer event returns only after that event's run."""

        async def scenario():
            controller = ViewportController(
                _make_engine(), RecordingClient(delay=0.05), debounce_seconds=0.02,
            )
            first = controller.on_viewport_changed(_viewport())
            waiter = asyncio.create_task(controller.wait_idle())
            await asyncio.sleep(0.01)
            controller.on_viewport_changed(_viewport(lat=37.60))
            cells = await waiter
            return controller, first, cells

        controller, first, cells = asyncio.run(scenario())
        assert first.cancelled()
        assert controller.runs == 1
        assert controller.viewport == _viewport(lat=37.60)
        assert cells is controller.cells


class TestPushAndClose:
    def test_apply_response_overwrites(self):
        async def scenario():
            controller = ViewportController(_make_engine(), RecordingClient(tribe="red"))
            vp = _viewport()
            await controller.refresh(vp)
            center = controller.engine.center_cell(vp)
            controller.apply_response(TerritoryResponse(
                cells=[RemoteCell(center.q, center.r, None, None, T0)],
                region=RegionInfo(center.q, center.r, 1),
            ))
            return controller, center

        controller, center = asyncio.run(scenario())
        assert not controller.cells[center].is_claimed

    def test_close_releases_client(self):
        async def scenario():
            client = RecordingClient()
            controller = ViewportController(_make_engine(), client, debounce_seconds=1.0)
            pending = controller.on_viewport_changed(_viewport())
            await controller.close()
            await asyncio.sleep(0)
            return client, pending

        client, pending = asyncio.run(scenario())
        assert client.closed
        assert pending.cancelled()
