"""DevTea Backend Application.

This is the main entry point for the DevTea chat backend. The chat state is
held in memory by a single ``ChatService`` created per application, and
clients emulate a live socket by polling the command endpoint.

Modules:
    - chat: command endpoint (POST /api/websocket)
    - rooms: public room listing
    - auth: mock account bootstrap
    - health: status summary
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from devtea import __version__
from devtea.auth.router import router as auth_router
from devtea.auth.service import UserDirectory
from devtea.chat.router import router as chat_router
from devtea.chat.service import build_chat_service
from devtea.config import AppSettings, get_config
from devtea.health.router import router as health_router
from devtea.rooms.router import router as rooms_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn's access log repeats every poll request.
logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    config: AppSettings = app.state.settings

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in devtea.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"DevTea running on http://{config.server.host}:{config.server.port} "
        f"with {len(app.state.chat.store.rooms)} rooms"
    )

    yield  # Application runs here

    logger.info("Application shutdown complete")


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application with its own in-memory state.

    Args:
        settings: Settings to use; defaults to ``get_config()``.

    Returns:
        A ready FastAPI app. ``app.state.chat`` holds the chat service and
        ``app.state.users`` the user directory.
    """
    settings = settings or get_config()

    app = FastAPI(
        title="DevTea API",
        description="Backend service for DevTea - polling-based developer chat",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.chat = build_chat_service(settings.chat)
    app.state.users = UserDirectory()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register all routers
    app.include_router(chat_router)
    app.include_router(rooms_router)
    app.include_router(auth_router)
    app.include_router(health_router)
    return app


app = create_app()


def run() -> None:
    """Serve ``app`` with uvicorn using the configured host and port."""
    config = get_config()
    uvicorn.run(
        "devtea.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.debug,
    )


if __name__ == "__main__":
    run()
