"""Teamchat Backend Application.

This is the main entry point for the team chat service: persisted,
room-scoped messaging between the members of a startup team, with
presence tracking and typing indicators over WebSockets.

Modules:
    - chat: WebSocket protocol, presence, membership and history endpoints
    - auth: JWT bearer token verification
    - store: DuckDB persistence for users, teams and messages
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from teamchat.chat.router import router as chat_router
from teamchat.chat.server import ChatServer
from teamchat.config import AppSettings, get_config
from teamchat.errors import ChatError
from teamchat.store.service import ChatStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "websockets",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"[HTTP] {request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"success": False, "message": exc.message}, status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": "Invalid request"},
        status_code=400,
    )


def create_app(config: Optional[AppSettings] = None, store: Optional[ChatStore] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Settings to use; defaults to the process-wide settings.
        store: Store to use; defaults to a DuckDB file at ``database.path``.
    """
    settings = config or get_config()
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Apply configured log level to root logger so that
        # `logging.level: "debug"` in teamchat.settings.yaml activates DEBUG output.
        configured_level = getattr(logging, settings.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", settings.logging.level.upper())

        logger.info(
            f"Chat server ready on http://{settings.server.host}:{settings.server.port}"
        )
        yield  # Application runs here

        # Shutdown
        if owns_store:
            app.state.chat.store.close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="Teamchat API",
        description="Real-time team chat for student and startup teams",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.chat = ChatServer(store or ChatStore(settings.database.path), settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(chat_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object with the number of rooms that have someone present.
        """
        return {"status": "ok", "activeRooms": app.state.chat.presence.room_count()}

    return app


def run() -> None:
    """Start uvicorn with the configured WebSocket heartbeat."""
    import uvicorn

    settings = get_config()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        ws_ping_interval=settings.server.ws_ping_interval,
        ws_ping_timeout=settings.server.ws_ping_timeout,
    )


if __name__ == "__main__":
    run()
