"""
FastAPI application factory for the territory map API.
"""

from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from territory.api.routers import maps
from territory.api.sessions import MapSessionManager
from territory.core.config import GridConfig

# Load .env from the project root first, then CWD
_project_root = Path(__file__).resolve().parents[3]  # src/territory/api/app.py → project root
load_dotenv(_project_root / ".env")
load_dotenv(Path.cwd() / ".env")


def create_app(defaults: GridConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        defaults: Base grid configuration for new sessions. Read from
            ``TERRITORY_*`` environment variables when omitted.
    """
    application = FastAPI(
        title="Territory Grid API",
        description="Hexagonal territory grid engine for the turtle run map",
        version="0.1.0",
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    config = defaults if defaults is not None else GridConfig.from_env()
    config.validate()
    application.state.session_manager = MapSessionManager(defaults=config)

    application.include_router(maps.router, prefix="/api/maps", tags=["maps"])

    @application.get("/api/health")
    def health_check():
        return {"status": "ok"}

    return application


app = create_app()
