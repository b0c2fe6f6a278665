"""
Territory service clients.

Each client answers one async request/response call, ``fetch(request)``.
Cancelling the awaiting task cancels the lookup. Any transport or payload
problem surfaces as ``TerritoryUnavailableError`` so callers can fall back
to their cached cell set.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx
import numpy as np

from territory.core.config import GridConfig
from territory.core.occupancy import TerritoryRequest, TerritoryResponse
from territory.core.trail_generators import ProceduralOccupancy

logger = logging.getLogger(__name__)


class TerritoryUnavailableError(Exception):
    """Raised when the territory service cannot provide a usable response."""


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class TerritoryClient(ABC):
    """Common interface for territory sources."""

    source: str  # "http" or "procedural"

    @abstractmethod
    async def fetch(self, request: TerritoryRequest) -> TerritoryResponse: ...

    async def aclose(self) -> None:
        """Release any held connections."""


# ---------------------------------------------------------------------------
# HTTP service
# ---------------------------------------------------------------------------

REGION_PATH = "/territory/region"


class HttpTerritoryClient(TerritoryClient):
    """Client for the territory REST service.

    Args:
        base_url: Service root, e.g. ``https://api.example.com``.
        timeout: Per-request timeout in seconds.
        client: Pre-built ``httpx.AsyncClient`` (tests pass one with a mock
            transport). When given, the caller owns its lifetime.
    """

    source = "http"

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch(self, request: TerritoryRequest) -> TerritoryResponse:
        url = self.base_url + REGION_PATH
        try:
            resp = await self._client.post(url, json=request.to_dict())
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as exc:
            raise TerritoryUnavailableError(f"Territory request failed: {exc}") from exc
        except ValueError as exc:
            raise TerritoryUnavailableError(f"Territory response is not JSON: {exc}") from exc

        try:
            return TerritoryResponse.from_dict(payload)
        except ValueError as exc:
            raise TerritoryUnavailableError(f"Malformed territory response: {exc}") from exc

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# ---------------------------------------------------------------------------
# Procedural (demo) service
# ---------------------------------------------------------------------------

class ProceduralTerritoryClient(TerritoryClient):
    """Serves generated claims in place of the real service.

    Args:
        occupancy: The generator to answer from.
        latency: Artificial delay in seconds before answering.
    """

    source = "procedural"

    def __init__(self, occupancy: ProceduralOccupancy, latency: float = 0.0) -> None:
        self.occupancy = occupancy
        self.latency = latency

    async def fetch(self, request: TerritoryRequest) -> TerritoryResponse:
        if self.latency > 0:
            await asyncio.sleep(self.latency)
        response = self.occupancy.response_for(request)
        logger.debug(
            "Procedural territory for (%d, %d) radius %d: %d cells",
            request.center_q, request.center_r, request.radius, len(response.cells),
        )
        return response


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_client(
    config: GridConfig, rng: np.random.Generator | None = None
) -> TerritoryClient | None:
    """Pick a client for ``config``.

    The HTTP service when ``remote_base_url`` is set, the procedural
    service in demo mode, otherwise None (no claims are applied).
    """
    if config.remote_base_url:
        return HttpTerritoryClient(config.remote_base_url, timeout=config.remote_timeout_seconds)
    if config.demo_mode:
        return ProceduralTerritoryClient(ProceduralOccupancy(seed=config.random_seed, rng=rng))
    return None
