"""
Shared test configuration.

Clears TERRITORY_* environment variables for the test session so a
developer's local settings cannot leak into config defaults, and provides
the standard origin/projector fixtures.
"""

import os

import pytest

from territory.core.config import DEFAULT_ORIGIN, GridConfig
from territory.core.engine import TerritoryEngine
from territory.core.projection import CoordinateProjector


@pytest.fixture(autouse=True, scope="session")
def _isolate_env():
    """Hide TERRITORY_* variables for the whole session."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("TERRITORY_")}
    for key in saved:
        os.environ.pop(key)
    yield
    os.environ.update(saved)


@pytest.fixture
def origin():
    return DEFAULT_ORIGIN


@pytest.fixture
def projector(origin):
    return CoordinateProjector(origin, side_length=20.0)


@pytest.fixture
def engine():
    return TerritoryEngine(GridConfig(demo_mode=False))
