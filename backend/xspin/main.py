import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta
from typing import AsyncGenerator

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .enums import CloseReason
from .events.manager import manager
from .routers import rooms, tournaments, users
from .services.lobby import registry

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    cleanup_task = asyncio.create_task(_room_cleanup_loop())
    yield
    cleanup_task.cancel()
    with suppress(asyncio.CancelledError):
        await cleanup_task


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[str(origin) for origin in settings.cors_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(users.router, prefix=settings.api_prefix)
    app.include_router(rooms.router, prefix=settings.api_prefix)
    app.include_router(tournaments.router, prefix=settings.api_prefix)

    @app.get("/healthz")
    async def healthcheck():
        return {"status": "ok", "online": manager.online_player_count}

    @app.websocket("/ws/rooms/{room_id}")
    async def room_socket(websocket: WebSocket, room_id: str):
        await _serve_stream(room_id, websocket)

    @app.websocket("/ws/tournaments/{tournament_id}")
    async def tournament_socket(websocket: WebSocket, tournament_id: str):
        await _serve_stream(tournament_id, websocket)

    return app


async def _serve_stream(channel: str, websocket: WebSocket) -> None:
    queue = await manager.connect_room(channel, websocket)
    pump = asyncio.create_task(manager.pump(channel, websocket, queue))
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        pump.cancel()
        with suppress(asyncio.CancelledError, WebSocketDisconnect):
            await pump
        manager.disconnect_room(channel, websocket)


async def _room_cleanup_loop() -> None:
    interval = max(60, settings.room_cleanup_interval_seconds)
    try:
        while True:
            await asyncio.sleep(interval)
            cutoff = datetime.utcnow() - timedelta(minutes=max(5, settings.room_idle_minutes))
            try:
                deleted = registry.delete_idle_rooms(cutoff=cutoff, reason=CloseReason.IDLE_CLEANUP)
                if deleted:
                    logger.info("Removed %s idle rooms", deleted)
            except Exception:  # noqa: BLE001
                logger.exception("Room cleanup loop failed")
    except asyncio.CancelledError:
        logger.debug("Room cleanup loop cancelled")
        raise


app = create_app()
