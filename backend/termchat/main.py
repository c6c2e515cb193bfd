"""Terminal Chatroom Backend Application.

This is the main entry point for the chat relay service.

Modules:
    - chat: WebSocket chat room (session registry, history, commands)
    - auth: Gate issuing join tokens, with an optional account store
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from termchat import __version__
from termchat.auth.router import router as gate_router
from termchat.chat.manager import get_session_manager
from termchat.chat.router import router as chat_router
from termchat.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn logs every handshake at INFO; the [WS] lines already cover it.
for _noisy in ("uvicorn.access", "websockets"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.server.log_level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.server.log_level.upper())

    manager = get_session_manager()
    logger.info(
        "Chat room ready: history_size=%d, require_account=%s",
        manager.history.capacity,
        config.gate.require_account,
    )
    logger.info(f"Terminal Chatroom running at http://localhost:{config.server.port}")

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete (%d participants online)", len(manager.participants))


# Create FastAPI application with metadata
app = FastAPI(
    title="Terminal Chatroom",
    description="Single-room WebSocket chat relay with a join-token gate",
    version=__version__,
    lifespan=lifespan,
)

# Register all routers
app.include_router(chat_router)
app.include_router(gate_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    config = get_config()
    uvicorn.run(
        "termchat.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
    )


if __name__ == "__main__":
    run()
