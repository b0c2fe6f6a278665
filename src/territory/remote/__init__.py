"""Remote territory service clients."""

from territory.remote.client import (
    HttpTerritoryClient,
    ProceduralTerritoryClient,
    TerritoryClient,
    TerritoryUnavailableError,
    create_client,
)

__all__ = [
    "HttpTerritoryClient",
    "ProceduralTerritoryClient",
    "TerritoryClient",
    "TerritoryUnavailableError",
    "create_client",
]
