"""
Pydantic models for API request/response validation.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


# === Sessions ===

class CreateMapSessionRequest(BaseModel):
    config: dict[str, Any] | None = None
    name: str | None = None


class MapSessionSummary(BaseModel):
    id: str
    name: str
    cell_count: int
    occupied_count: int
    source: str | None


class MapSessionResponse(MapSessionSummary):
    config: dict[str, Any]
    viewport: dict[str, Any] | None


# === Viewport ===

class GeoPointModel(BaseModel):
    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class ViewportRequest(BaseModel):
    center: GeoPointModel
    span_lat: float = Field(ge=0.0, le=180.0)
    span_lon: float = Field(ge=0.0, le=360.0)
    force: bool = False


# === Remote-shaped occupancy payload ===

class RemoteCellModel(BaseModel):
    q: int
    r: int
    occupiedBy: str | None = None
    density: int | None = None
    lastUpdated: datetime | None = None


class RegionModel(BaseModel):
    centerQ: int = 0
    centerR: int = 0
    radius: int = 0


class OccupancyRequest(BaseModel):
    cells: list[RemoteCellModel] = Field(default_factory=list)
    region: RegionModel = Field(default_factory=RegionModel)
