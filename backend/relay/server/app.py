from __future__ import annotations

import contextlib
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Mount, Route, WebSocketRoute
from starlette.staticfiles import StaticFiles

from lobby.directory.manager import DiscoveryDirectory
from relay.messaging.router import MessageRouter
from relay.server.location import build_server_info
from relay.server.settings import RelayServerSettings
from relay.server.websocket import websocket_endpoint
from relay.session.manager import SessionManager
from relay.session.store import SessionStore
from shared.build_info import APP_VERSION, GIT_COMMIT
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request
    from starlette.websockets import WebSocket


async def index(_request: Request) -> PlainTextResponse:
    return PlainTextResponse("Server is running!")


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", "version": APP_VERSION, "commit": GIT_COMMIT})


async def status(request: Request) -> JSONResponse:
    session_manager: SessionManager = request.app.state.session_manager
    settings: RelayServerSettings = request.app.state.settings
    return JSONResponse(
        {
            "status": "ok",
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
            "sessions": session_manager.session_count,
            "connections": session_manager.connection_count,
            "listed_rooms": session_manager.listed_room_count,
            "max_sessions": settings.max_sessions,
            "serverInfo": request.app.state.server_info.model_dump(by_alias=True),
        },
    )


def create_app(
    settings: RelayServerSettings | None = None,
    session_manager: SessionManager | None = None,
    message_router: MessageRouter | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = RelayServerSettings()

    server_info = build_server_info(settings.server_name, settings.region)

    if session_manager is None:
        session_manager = SessionManager(
            SessionStore(max_sessions=settings.max_sessions),
            DiscoveryDirectory(
                ttl_seconds=settings.directory_ttl_seconds,
                sweep_interval_seconds=settings.directory_sweep_interval_seconds,
            ),
            server_info=server_info,
        )

    if message_router is None:
        message_router = MessageRouter(session_manager)

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, message_router)

    routes: list[Route | WebSocketRoute | Mount] = [
        Route("/", index, methods=["GET"], name="index"),
        Route("/health", health, methods=["GET"], name="health"),
        Route("/status", status, methods=["GET"], name="status"),
        WebSocketRoute("/ws", ws_endpoint, name="ws"),
    ]

    # Mounted last so the routes above take precedence over same-named files.
    static_dir = Path(settings.static_dir)
    if static_dir.is_dir():
        routes.append(Mount("/", app=StaticFiles(directory=str(static_dir), html=True), name="static"))
    else:
        logger.warning("static directory not found, client files will not be served", path=str(static_dir))

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        session_manager.start()
        yield
        await session_manager.stop()

    app = Starlette(routes=routes, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.server_info = server_info

    logger.info("relay server ready", location=server_info.location, region=server_info.region)
    return app


def get_app() -> Starlette:  # pragma: no cover  # deadcode: ignore
    """ASGI application factory for uvicorn --factory relay.server.app:get_app."""
    settings = RelayServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings)


def main() -> None:  # pragma: no cover
    """Console entry point: serve get_app() on the configured host and port."""
    settings = RelayServerSettings()
    uvicorn.run(
        "relay.server.app:get_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        log_config=None,
    )
