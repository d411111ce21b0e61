"""
Main application module for the presence hub.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from companion.shared.db.session import (
    create_engine_from_url,
    create_session_factory,
)

from .api.routers import router
from .core.config import Settings, get_settings
from .core.logging_config import setup_logging
from .core.metrics import HubMetrics
from .core.presence_hub import PresenceHub
from .core.session_registry import SessionRegistry
from .core.socket_server import SocketServer
from .core.system_info import SystemInfoService
from .db.repository import PresenceRepository

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None):
    """Build the ASGI app: Socket.IO in front, FastAPI for everything else."""
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL)

    engine = create_engine_from_url(settings.database_url, echo=settings.DB_ECHO)
    repository = PresenceRepository(
        engine, create_session_factory(engine), uid_length=settings.UID_LENGTH
    )
    registry = SessionRegistry()
    metrics = HubMetrics()
    system_info = SystemInfoService(
        repository, refresh_seconds=settings.SYSTEM_INFO_REFRESH_SECONDS
    )
    socket_server = SocketServer(settings)
    hub = PresenceHub(
        repository=repository,
        registry=registry,
        transport=socket_server,
        system_info=system_info,
        metrics=metrics,
        server_version=settings.SERVER_VERSION,
    )
    socket_server.bind_hub(hub)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting presence hub...")
        await repository.initialize(
            create_tables=settings.ENV == "development"
        )
        await system_info.start()
        logger.info("Presence hub started successfully")

        yield

        logger.info("Shutting down presence hub")
        await system_info.stop()
        await repository.shutdown()
        logger.info("Presence hub shut down successfully")

    fastapi_app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Presence and pairing hub for companion clients",
        version=settings.VERSION,
        lifespan=lifespan,
    )
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    fastapi_app.include_router(router, prefix=settings.API_PREFIX)

    fastapi_app.state.settings = settings
    fastapi_app.state.repository = repository
    fastapi_app.state.registry = registry
    fastapi_app.state.metrics = metrics
    fastapi_app.state.hub = hub
    fastapi_app.state.socket_server = socket_server

    return socket_server.asgi_app(other_asgi_app=fastapi_app)


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run(
        "companion.hub.app.main:create_app",
        factory=True,
        host=settings.SOCKET_IO_HOST,
        port=settings.SOCKET_IO_PORT,
    )
