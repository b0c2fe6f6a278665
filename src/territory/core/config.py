"""
Master configuration for the territory grid engine.

ALL tunable parameters live here. Nothing in the grid pipeline is hardcoded.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, fields
from typing import Any

from territory.core.hex_grid import GeoPoint, Viewport

# Seoul City Hall; the absolute origin every client agrees on.
DEFAULT_ORIGIN = GeoPoint(latitude=37.5665, longitude=126.9780)

# Roughly a 1 km window at street zoom.
DEFAULT_VIEWPORT_SPAN = 0.009

_ENV_PREFIX = "TERRITORY_"


@dataclass
class GridConfig:
    """
    Grid configuration: projection, capacity, hysteresis and remote settings.

    Use ``to_dict()`` / ``from_dict()`` for serialization and comparison.
    """

    # === Projection ===
    origin_lat: float = DEFAULT_ORIGIN.latitude
    origin_lon: float = DEFAULT_ORIGIN.longitude
    side_length_m: float = 20.0

    # === Viewport generation & capacity ===
    expansion_factor: float = 1.5
    max_viewport_span: float = 0.05  # degrees; wider views are rejected by the API
    max_cells: int = 800
    protect_occupied: bool = True

    # === Regeneration hysteresis (fractions of the smaller viewport span) ===
    center_threshold: float = 0.3
    span_threshold: float = 0.5

    # === Calling layer ===
    debounce_seconds: float = 0.5
    remote_timeout_seconds: float = 5.0

    # === Remote territory service ===
    remote_base_url: str | None = None
    demo_mode: bool = True  # procedural claims when no remote is configured
    random_seed: int | None = None

    @property
    def origin(self) -> GeoPoint:
        return GeoPoint(self.origin_lat, self.origin_lon)

    def default_viewport(self) -> Viewport:
        """Viewport used when no device location is available."""
        return Viewport(
            center=self.origin,
            span_lat=DEFAULT_VIEWPORT_SPAN,
            span_lon=DEFAULT_VIEWPORT_SPAN,
        )

    def validate(self) -> None:
        """Raise ValueError if any parameter is outside its valid range."""
        if not (-90.0 <= self.origin_lat <= 90.0):
            raise ValueError(f"origin_lat out of range: {self.origin_lat}")
        if not (-180.0 <= self.origin_lon <= 180.0):
            raise ValueError(f"origin_lon out of range: {self.origin_lon}")
        if not self.side_length_m > 0:
            raise ValueError(f"side_length_m must be positive, got {self.side_length_m}")
        if math.isnan(self.expansion_factor) or self.expansion_factor < 1.0:
            raise ValueError(
                f"expansion_factor must be >= 1.0, got {self.expansion_factor}"
            )
        if not self.max_viewport_span > 0:
            raise ValueError(
                f"max_viewport_span must be positive, got {self.max_viewport_span}"
            )
        if self.max_cells < 0:
            raise ValueError(f"max_cells must be >= 0, got {self.max_cells}")
        if self.center_threshold < 0 or self.span_threshold < 0:
            raise ValueError("regeneration thresholds must be non-negative")
        if self.debounce_seconds < 0 or self.remote_timeout_seconds <= 0:
            raise ValueError("debounce must be >= 0 and remote timeout > 0")

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------
    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> GridConfig:
        """Deserialize from a dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in d.items() if k in known})

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)

    @classmethod
    def from_json(cls, s: str) -> GridConfig:
        return cls.from_dict(json.loads(s))

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> GridConfig:
        """Build a config from ``TERRITORY_*`` environment variables.

        Variable names are the upper-cased field names, e.g.
        ``TERRITORY_MAX_CELLS=600``. Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(_ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            values[f.name] = _coerce(f.name, raw, getattr(cls, f.name, None))
        return cls(**values)

    def diff(self, other: GridConfig) -> dict[str, tuple[Any, Any]]:
        """Return parameters that differ between two configs."""
        diffs: dict[str, tuple[Any, Any]] = {}
        for k in self.to_dict():
            v1 = getattr(self, k)
            v2 = getattr(other, k)
            if v1 != v2:
                diffs[k] = (v1, v2)
        return diffs


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the field's default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if name == "random_seed":
        return int(raw)
    return raw
