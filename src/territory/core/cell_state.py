"""Merging freshly generated cells into the known cell set."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from territory.core.hex_grid import GridCell, GridCellSet

logger = logging.getLogger(__name__)


def merge(existing: GridCellSet, incoming: Iterable[GridCell]) -> GridCellSet:
    """Add incoming cells whose coordinates are not yet tracked.

    Existing entries, claims included, are kept exactly as they are; an
    incoming cell for a tracked coordinate is dropped. New cells enter
    unoccupied regardless of what the incoming cell carries.

    Args:
        existing: The current cell set.
        incoming: Cells produced by the viewport generator.

    Returns:
        A new GridCellSet; ``existing`` is not modified.
    """
    cells = dict(existing.items())
    added = 0
    for cell in incoming:
        if cell.coord in cells:
            continue
        cells[cell.coord] = cell if cell.occupant is None else GridCell(cell.coord)
        added += 1
    logger.debug("Merged %d new cells into %d existing", added, len(existing))
    return GridCellSet(cells.values())
