"""
Procedural claim generators for demo and preview maps.

Lays down running "trails": piecewise-linear paths between axial
waypoints with lateral jitter, surrounded by clusters of claimed cells
whose density fades along the trail and away from it. Side branches and
a sprinkling of scattered claims complete the picture.

All randomness comes from an injected numpy Generator, so the same seed
always produces the same claims.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Callable

import numpy as np

from territory.core.hex_grid import (
    AxialCoord,
    GridCellSet,
    HexDirection,
    Tribe,
    clamp_density,
)
from territory.core.occupancy import (
    RegionInfo,
    RemoteCell,
    TerritoryRequest,
    TerritoryResponse,
    apply_claims,
)
from territory.core.projection import SQRT3, round_half_away

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
PatternGenerator = Callable[[AxialCoord, np.random.Generator, datetime], list[RemoteCell]]

# Lateral wobble of interior trail steps, in cell widths.
TRAIL_JITTER = 0.45

# Weakest density a trail cluster lays down.
CLUSTER_MIN_DENSITY = 2


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lateral_unit(dq: float, dr: float) -> tuple[float, float]:
    """Axial vector one cell width long, perpendicular to (dq, dr).

    Goes through planar space (unit side length): rotate 90 degrees, then
    scale to the neighbor spacing of sqrt(3).
    """
    x = 1.5 * dq
    y = SQRT3 / 2.0 * dq + SQRT3 * dr
    length = math.hypot(x, y)
    if length == 0:
        return 0.0, 0.0
    px, py = -y * SQRT3 / length, x * SQRT3 / length
    lq = px / 1.5
    lr = (py - SQRT3 / 2.0 * lq) / SQRT3
    return lq, lr


def interpolate_trail(
    waypoints: list[AxialCoord],
    rng: np.random.Generator,
    jitter: float = TRAIL_JITTER,
) -> list[AxialCoord]:
    """Walk straight segments between waypoints, one cell per step.

    Interior steps are pushed sideways by up to ``jitter`` cell widths
    before rounding. Waypoints themselves are hit exactly. Consecutive
    duplicate cells are collapsed.
    """
    if not waypoints:
        return []
    path: list[AxialCoord] = [waypoints[0]]
    for a, b in zip(waypoints, waypoints[1:]):
        steps = a.distance(b)
        if steps == 0:
            continue
        dq, dr = b.q - a.q, b.r - a.r
        lq, lr = _lateral_unit(dq, dr)
        for i in range(1, steps + 1):
            t = i / steps
            fq = a.q + dq * t
            fr = a.r + dr * t
            if i < steps:
                offset = rng.uniform(-jitter, jitter)
                fq += offset * lq
                fr += offset * lr
            step = AxialCoord(round_half_away(fq), round_half_away(fr))
            if step != path[-1]:
                path.append(step)
    return path


def course_waypoints(
    start: AxialCoord, direction: HexDirection, length: int, bend_every: int = 4
) -> list[AxialCoord]:
    """Waypoints for a course heading ``direction``, bending side to side."""
    left, right = direction.flanks()
    waypoints = [start]
    for k, along in enumerate(range(bend_every, length, bend_every)):
        side = left if k % 2 == 0 else right
        waypoints.append(start.offset(direction, along).offset(side, 1))
    waypoints.append(start.offset(direction, length))
    return waypoints


def base_density(progress: float) -> int:
    """Density at a point along a trail: strongest near the start."""
    if progress < 0.3:
        return 5
    elif progress < 0.8:
        return 4
    else:
        return 3


def adjust_density(base: int, distance: int, factor: float) -> int:
    """Fade ``base`` with distance from the trail, then perturb and clamp.

    The first ring off the trail keeps full strength; each further ring
    loses 30%. Cluster cells never drop below CLUSTER_MIN_DENSITY.
    """
    reduction = min(1.0, max(0, distance - 1) * 0.3)
    return clamp_density(max(CLUSTER_MIN_DENSITY, int(base * (1.0 - reduction) * factor)))


def _cluster(
    center: AxialCoord,
    width: int,
    density: int,
    tribe: str,
    rng: np.random.Generator,
    now: datetime,
) -> list[RemoteCell]:
    """Claims in a hexagon of radius ``width``, thinning towards the rim."""
    claims: list[RemoteCell] = []
    for dq in range(-width, width + 1):
        for dr in range(-width, width + 1):
            distance = max(abs(dq), abs(dr), abs(dq + dr))
            if distance > width:
                continue
            factor = rng.uniform(0.7, 1.3)
            probability = 1.0 - (distance / (width + 1)) * 0.6
            if rng.random() < probability:
                claims.append(RemoteCell(
                    q=center.q + dq,
                    r=center.r + dr,
                    occupied_by=tribe,
                    density=adjust_density(density, distance, factor),
                    last_updated=now,
                ))
    return claims


def _branches(
    path: list[AxialCoord],
    direction: HexDirection,
    tribe: str,
    rng: np.random.Generator,
    now: datetime,
) -> list[RemoteCell]:
    """Short spurs off every fourth trail step, half their cells claimed."""
    claims: list[RemoteCell] = []
    for index in range(2, len(path) - 2, 4):
        start = path[index]
        for flank in direction.flanks():
            branch_length = int(rng.integers(2, 5))
            for i in range(1, branch_length + 1):
                coord = start.offset(flank, i)
                if rng.random() < 0.5:
                    claims.append(RemoteCell(
                        q=coord.q,
                        r=coord.r,
                        occupied_by=tribe,
                        density=4 if i == 1 else 3,
                        last_updated=now,
                    ))
    return claims


def generate_running_course(
    center: AxialCoord,
    direction: HexDirection,
    tribe: str,
    rng: np.random.Generator,
    now: datetime,
    length: int = 12,
) -> list[RemoteCell]:
    """A running course from ``center`` heading ``direction``.

    Args:
        center: Start of the course.
        direction: Overall heading.
        tribe: Tribe id to claim for.
        rng: Random source.
        now: Timestamp stamped on every claim.
        length: Course length in cells.

    Returns:
        Claims along the course, its clusters and branches. The same
        coordinate may appear more than once; later entries win when applied.
    """
    path = interpolate_trail(course_waypoints(center, direction, length), rng)
    claims: list[RemoteCell] = []
    last = max(1, len(path) - 1)
    for index, step in enumerate(path):
        progress = index / last
        width = max(2, int(4 * (1.0 - progress * 0.5)))
        claims.extend(_cluster(step, width, base_density(progress), tribe, rng, now))
    claims.extend(_branches(path, direction, tribe, rng, now))
    return claims


def generate_scattered(
    center: AxialCoord,
    rng: np.random.Generator,
    now: datetime,
    radius: int = 15,
    count: int = 20,
) -> list[RemoteCell]:
    """Isolated claims of random tribes at 5..radius cells from ``center``."""
    tribes = [t.value for t in Tribe]
    min_distance = min(5, radius)
    claims: list[RemoteCell] = []
    for _ in range(count):
        angle = rng.uniform(0.0, 2.0 * math.pi)
        distance = int(rng.integers(min_distance, radius + 1))
        claims.append(RemoteCell(
            q=center.q + int(distance * math.cos(angle)),
            r=center.r + int(distance * math.sin(angle)),
            occupied_by=tribes[int(rng.integers(0, len(tribes)))],
            density=int(rng.integers(1, 6)),
            last_updated=now,
        ))
    return claims


def generate_demo_territory(
    center: AxialCoord, rng: np.random.Generator, now: datetime
) -> list[RemoteCell]:
    """Three tribe courses radiating from ``center`` plus scattered claims."""
    claims: list[RemoteCell] = []
    claims.extend(generate_running_course(center, HexDirection.NORTHEAST, Tribe.RED.value, rng, now))
    claims.extend(generate_running_course(center, HexDirection.SOUTHWEST, Tribe.YELLOW.value, rng, now))
    claims.extend(generate_running_course(center, HexDirection.SOUTH, Tribe.BLUE.value, rng, now))
    claims.extend(generate_scattered(center, rng, now))
    logger.debug("Demo territory around (%d, %d): %d claims", center.q, center.r, len(claims))
    return claims


def _single_course(center: AxialCoord, rng: np.random.Generator, now: datetime) -> list[RemoteCell]:
    return generate_running_course(center, HexDirection.NORTHEAST, Tribe.RED.value, rng, now)


# Registry of available claim patterns.
PATTERN_GENERATORS: dict[str, PatternGenerator] = {
    "demo": generate_demo_territory,
    "running_course": _single_course,
    "scattered": generate_scattered,
}


def generate_pattern(
    name: str,
    center: AxialCoord,
    seed: int | None = None,
    rng: np.random.Generator | None = None,
    now: datetime | None = None,
) -> list[RemoteCell]:
    """Factory function to generate claims by pattern name.

    Args:
        name: Name of the pattern (must be in PATTERN_GENERATORS).
        center: Cell the pattern is laid around.
        seed: Seed for a fresh Generator when ``rng`` is not given.
        rng: Random source; takes precedence over ``seed``.
        now: Claim timestamp (defaults to the current UTC time).

    Raises:
        KeyError: If the pattern name is not found.
    """
    if name not in PATTERN_GENERATORS:
        raise KeyError(
            f"Unknown claim pattern '{name}'. "
            f"Available: {list(PATTERN_GENERATORS.keys())}"
        )
    rng = rng if rng is not None else np.random.default_rng(seed)
    return PATTERN_GENERATORS[name](center, rng, now or _utcnow())


class ProceduralOccupancy:
    """Reproducible stand-in for the territory service.

    Args:
        seed: Seed for the owned Generator; ignored when ``rng`` is given.
        rng: Random source to draw from.
        pattern: Key into PATTERN_GENERATORS.
        clock: Source of claim timestamps.
    """

    def __init__(
        self,
        seed: int | None = None,
        rng: np.random.Generator | None = None,
        pattern: str = "demo",
        clock: Clock | None = None,
    ) -> None:
        if pattern not in PATTERN_GENERATORS:
            raise KeyError(f"Unknown claim pattern '{pattern}'")
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        self.pattern = pattern
        self.clock = clock or _utcnow

    def generate_claims(self, center: AxialCoord) -> list[RemoteCell]:
        return PATTERN_GENERATORS[self.pattern](center, self.rng, self.clock())

    def response_for(self, request: TerritoryRequest) -> TerritoryResponse:
        """Answer a region request the way the territory service would."""
        center = AxialCoord(request.center_q, request.center_r)
        claims = [
            c for c in self.generate_claims(center)
            if c.coord.distance(center) <= request.radius
        ]
        return TerritoryResponse(
            cells=claims,
            region=RegionInfo(request.center_q, request.center_r, request.radius),
        )


def apply_procedural(
    cells: GridCellSet,
    center: AxialCoord,
    rng: np.random.Generator | None = None,
    seed: int | None = None,
    pattern: str = "demo",
) -> GridCellSet:
    """Overwrite claims of tracked cells with a generated pattern."""
    claims = generate_pattern(pattern, center, seed=seed, rng=rng)
    return apply_claims(cells, claims)
