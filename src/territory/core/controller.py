"""
Calling layer for the territory pipeline.

The controller owns the single current GridCellSet and decides when the
pipeline runs:

- viewport change events are debounced with cancel-and-restart, so a burst
  of pans produces one run;
- at most one pipeline run is in flight at a time;
- a run whose request has been superseded never commits its result;
- a failed or slow remote lookup leaves the current set untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from territory.core.engine import TerritoryEngine
from territory.core.hex_grid import GridCellSet, Viewport
from territory.core.occupancy import TerritoryResponse, apply_remote
from territory.remote.client import TerritoryUnavailableError

if TYPE_CHECKING:
    from territory.remote.client import TerritoryClient

logger = logging.getLogger(__name__)


class ViewportController:
    """Owns the current cell set and schedules pipeline runs.

    Args:
        engine: The pipeline to run.
        client: Territory source; None runs the pipeline without claims.
        cells: Initial cell set.
        debounce_seconds: Quiet period after the last viewport event.
            Defaults to the engine config.
        timeout_seconds: Remote lookup timeout. Defaults to the engine config.
    """

    def __init__(
        self,
        engine: TerritoryEngine,
        client: TerritoryClient | None = None,
        cells: GridCellSet | None = None,
        debounce_seconds: float | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self.engine = engine
        self.client = client
        self.cells: GridCellSet = cells if cells is not None else GridCellSet()
        self.viewport: Viewport | None = None
        self.debounce_seconds = (
            engine.config.debounce_seconds if debounce_seconds is None else debounce_seconds
        )
        self.timeout_seconds = (
            engine.config.remote_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

        self._generation = 0
        self._pending: asyncio.Task | None = None
        self._lock = asyncio.Lock()

        # Counters for diagnostics and tests.
        self.runs = 0
        self.skipped = 0
        self.discarded = 0
        self.fallbacks = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def on_viewport_changed(self, viewport: Viewport) -> asyncio.Task:
        """Schedule a run for ``viewport`` after the debounce interval.

        Cancels any pending or in-flight run started by an earlier event.
        Must be called from a running event loop.
        """
        token = self._next_token()
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        task = asyncio.get_running_loop().create_task(self._debounced(viewport, token))
        task.add_done_callback(self._report_failure)
        self._pending = task
        return task

    async def refresh(self, viewport: Viewport, force: bool = False) -> GridCellSet:
        """Run the pipeline for ``viewport`` now (after any run in flight).

        Args:
            viewport: Region to build cells for.
            force: Run even if the viewport barely moved.

        Returns:
            The controller's current cell set after this request.
        """
        return await self._run(viewport, self._next_token(), force)

    def apply_response(self, response: TerritoryResponse) -> GridCellSet:
        """Overwrite claims in the current set with a pushed response."""
        self.cells = apply_remote(self.cells, response)
        return self.cells

    async def wait_idle(self) -> GridCellSet:
        """Wait until no run is scheduled or in flight, then return the current set.

        A run scheduled while waiting replaces the one being awaited, so
        keep waiting until the latest scheduled task has finished.
        """
        while True:
            task = self._pending
            if task is None:
                return self.cells
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
            if task is self._pending and task.done():
                return self.cells

    async def close(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        if self.client is not None:
            await self.client.aclose()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _next_token(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, token: int) -> bool:
        return token == self._generation

    async def _debounced(self, viewport: Viewport, token: int) -> GridCellSet:
        await asyncio.sleep(self.debounce_seconds)
        return await self._run(viewport, token, force=False)

    async def _run(self, viewport: Viewport, token: int, force: bool) -> GridCellSet:
        async with self._lock:
            if not self._is_current(token):
                self.discarded += 1
                logger.debug("Request %d superseded before start", token)
                return self.cells

            if not force and not self.engine.should_regenerate(viewport, self.viewport):
                self.skipped += 1
                return self.cells

            response = None
            if self.client is not None:
                request = self.engine.build_request(viewport)
                try:
                    response = await asyncio.wait_for(
                        self.client.fetch(request), timeout=self.timeout_seconds
                    )
                except asyncio.TimeoutError:
                    return self._fall_back(f"timed out after {self.timeout_seconds}s")
                except TerritoryUnavailableError as exc:
                    return self._fall_back(str(exc))

            result = self.engine.regenerate(viewport, self.cells, response=response)

            if not self._is_current(token):
                self.discarded += 1
                logger.debug("Discarding stale result for request %d", token)
                return self.cells

            self.cells = result
            self.viewport = viewport
            self.runs += 1
            return result

    def _fall_back(self, reason: str) -> GridCellSet:
        self.fallbacks += 1
        logger.warning(
            "Territory lookup failed (%s); keeping %d cached cells", reason, len(self.cells)
        )
        return self.cells

    @staticmethod
    def _report_failure(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Scheduled territory refresh failed", exc_info=exc)
