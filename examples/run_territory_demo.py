#!/usr/bin/env python3
"""Pan a demo map around the origin and print how the cell set evolves."""

import asyncio

from territory.core.config import GridConfig
from territory.core.controller import ViewportController
from territory.core.engine import TerritoryEngine
from territory.core.hex_grid import GeoPoint, Viewport
from territory.remote.client import create_client

# (lat offset, lon offset, span) relative to the origin
ROUTE = [
    (0.0, 0.0, 0.009),
    (0.001, 0.0, 0.009),
    (0.004, 0.002, 0.009),
    (0.008, 0.006, 0.009),
    (0.008, 0.006, 0.02),
    (0.0, 0.0, 0.005),
]


async def main():
    config = GridConfig(random_seed=42)
    engine = TerritoryEngine(config)
    controller = ViewportController(engine, client=create_client(config))

    print("=== Territory grid demo ===")
    print(f"Origin: {config.origin_lat}, {config.origin_lon}")
    print(f"Cell side: {config.side_length_m} m, capacity {config.max_cells}")
    print()
    print(f"{'Step':>4} {'Lat':>9} {'Lon':>10} {'Span':>6} {'Run':>4} "
          f"{'Cells':>6} {'Claimed':>8} {'Red':>5} {'Yellow':>6} {'Blue':>5}")
    print("-" * 72)

    for step, (dlat, dlon, span) in enumerate(ROUTE):
        viewport = Viewport(
            GeoPoint(config.origin_lat + dlat, config.origin_lon + dlon), span, span,
        )
        runs_before = controller.runs
        cells = await controller.refresh(viewport)
        counts = {}
        for cell in cells.occupied():
            counts[cell.occupant.tribe_id] = counts.get(cell.occupant.tribe_id, 0) + 1
        print(
            f"{step:4d} {viewport.center.latitude:9.4f} {viewport.center.longitude:10.4f} "
            f"{span:6.3f} {'yes' if controller.runs > runs_before else 'no':>4} "
            f"{len(cells):6d} {cells.occupied_count:8d} "
            f"{counts.get('red', 0):5d} {counts.get('yellow', 0):6d} {counts.get('blue', 0):5d}"
        )

    print()
    print(f"Runs: {controller.runs}, skipped: {controller.skipped}, "
          f"fallbacks: {controller.fallbacks}")
    await controller.close()


if __name__ == "__main__":
    asyncio.run(main())
