"""Territory map endpoints: sessions, viewport updates, cells and claims."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

from territory.api.schemas import (
    CreateMapSessionRequest,
    MapSessionResponse,
    MapSessionSummary,
    OccupancyRequest,
    ViewportRequest,
)
from territory.api.serializers import serialize_cell_detail, serialize_cell_set
from territory.core.hex_grid import GeoPoint, Tribe, Viewport
from territory.core.occupancy import TerritoryResponse

router = APIRouter()


def _get_session(request: Request, session_id: str):
    mgr = request.app.state.session_manager
    try:
        return mgr.get_session(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")


def _session_response(session) -> dict[str, Any]:
    viewport = session.controller.viewport
    return {
        **session.summary(),
        "config": session.config.to_dict(),
        "viewport": viewport.to_dict() if viewport else None,
    }


@router.get("/tribes")
def list_tribes() -> list[dict[str, str]]:
    return [{"id": t.value, "name": t.display_name} for t in Tribe]


@router.post("/sessions", response_model=MapSessionResponse)
def create_session(req: CreateMapSessionRequest, request: Request):
    mgr = request.app.state.session_manager
    try:
        session = mgr.create_session(overrides=req.config, name=req.name)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return _session_response(session)


@router.get("/sessions", response_model=list[MapSessionSummary])
def list_sessions(request: Request):
    return request.app.state.session_manager.list_sessions()


@router.get("/sessions/{session_id}", response_model=MapSessionResponse)
def get_session(session_id: str, request: Request):
    return _session_response(_get_session(request, session_id))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, request: Request) -> dict[str, Any]:
    mgr = request.app.state.session_manager
    if not await mgr.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return {"deleted": True, "id": session_id}


@router.post("/{session_id}/viewport")
async def update_viewport(
    session_id: str, req: ViewportRequest, request: Request,
) -> dict[str, Any]:
    """Run the pipeline for a new viewport and return the resulting cells.

    Viewports that barely moved since the last run return the current
    cells unchanged unless ``force`` is set.
    """
    session = _get_session(request, session_id)
    max_span = session.config.max_viewport_span
    if req.span_lat > max_span or req.span_lon > max_span:
        raise HTTPException(
            status_code=422,
            detail=f"Viewport span exceeds the maximum of {max_span} degrees",
        )
    viewport = Viewport(
        center=GeoPoint(req.center.latitude, req.center.longitude),
        span_lat=req.span_lat,
        span_lon=req.span_lon,
    )
    controller = session.controller
    runs_before = controller.runs
    cells = await controller.refresh(viewport, force=req.force)
    return {
        "regenerated": controller.runs > runs_before,
        **serialize_cell_set(cells, session.engine.projector),
    }


@router.get("/{session_id}/cells")
def get_cells(session_id: str, request: Request) -> dict[str, Any]:
    session = _get_session(request, session_id)
    return serialize_cell_set(session.controller.cells, session.engine.projector)


@router.get("/{session_id}/cell/{q}/{r}")
def get_cell_detail(session_id: str, q: int, r: int, request: Request) -> dict[str, Any]:
    """One cell with its polygon and tracked neighbors."""
    session = _get_session(request, session_id)
    cells = session.controller.cells
    cell = cells.get_cell(q, r)
    if cell is None:
        raise HTTPException(status_code=404, detail=f"Cell ({q}, {r}) not tracked")
    return serialize_cell_detail(cell, cells, session.engine.projector)


@router.post("/{session_id}/occupancy")
def push_occupancy(session_id: str, req: OccupancyRequest, request: Request) -> dict[str, Any]:
    """Apply a territory-service-shaped payload as an authoritative overwrite."""
    session = _get_session(request, session_id)
    response = TerritoryResponse.from_dict(req.model_dump(exclude_none=True))
    cells = session.controller.apply_response(response)
    return {
        "applied": len(response.cells),
        "occupied_cells": cells.occupied_count,
    }
