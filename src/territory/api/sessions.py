"""
Session manager for territory maps.

Each session owns one engine, one territory client and the controller
holding that map's current cell set. Sessions live in memory only.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Any

from territory.core.config import GridConfig
from territory.core.controller import ViewportController
from territory.core.engine import TerritoryEngine
from territory.remote.client import create_client

logger = logging.getLogger(__name__)


@dataclass
class MapSession:
    """One client's map: configuration, pipeline and current cells."""

    id: str
    name: str
    config: GridConfig
    engine: TerritoryEngine
    controller: ViewportController

    @property
    def source(self) -> str | None:
        client = self.controller.client
        return client.source if client is not None else None

    def summary(self) -> dict[str, Any]:
        cells = self.controller.cells
        return {
            "id": self.id,
            "name": self.name,
            "cell_count": len(cells),
            "occupied_count": cells.occupied_count,
            "source": self.source,
        }


class MapSessionManager:
    """Creates, looks up and discards map sessions.

    Parameters
    ----------
    defaults : GridConfig | None
        Base configuration; per-session overrides are layered on top.
    """

    def __init__(self, defaults: GridConfig | None = None):
        self.defaults = defaults or GridConfig()
        self.sessions: dict[str, MapSession] = {}
        self._lock = threading.Lock()

    def create_session(
        self,
        overrides: dict[str, Any] | None = None,
        name: str | None = None,
    ) -> MapSession:
        """Create a new map session.

        Raises ValueError if the merged configuration is invalid.
        """
        config = GridConfig.from_dict({**self.defaults.to_dict(), **(overrides or {})})
        engine = TerritoryEngine(config)  # validates config
        controller = ViewportController(engine, client=create_client(config))

        session_id = uuid.uuid4().hex[:8]
        session = MapSession(
            id=session_id,
            name=name or f"map-{session_id}",
            config=config,
            engine=engine,
            controller=controller,
        )
        with self._lock:
            self.sessions[session_id] = session
        logger.info("Created map session %s (source=%s)", session_id, session.source)
        return session

    def get_session(self, session_id: str) -> MapSession:
        """Get a session by ID.

        Raises KeyError if not found.
        """
        with self._lock:
            if session_id not in self.sessions:
                raise KeyError(session_id)
            return self.sessions[session_id]

    def list_sessions(self) -> list[dict[str, Any]]:
        with self._lock:
            return [s.summary() for s in self.sessions.values()]

    async def delete_session(self, session_id: str) -> bool:
        """Remove a session and close its client. Returns False if unknown."""
        with self._lock:
            session = self.sessions.pop(session_id, None)
        if session is None:
            return False
        await session.controller.close()
        return True
