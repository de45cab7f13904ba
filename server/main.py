"""FastAPI WebSocket server for SnapMatch."""

import asyncio
import logging
import os
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import config
from game import GameStatus
from handlers import HANDLERS, ConnectionContext
from logging_config import game_code_var, player_id_var, request_id_var, setup_logging
from room import Room, RoomManager
from routers.health import router as health_router, set_health_dependencies
from stores.state_cache import StateCache, close_state_cache, get_state_cache

setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


room_manager = RoomManager()

_state_cache: Optional[StateCache] = None
_cleanup_task: Optional[asyncio.Task] = None


async def _periodic_room_cleanup():
    """Drop rooms that have been idle longer than ROOM_TIMEOUT_MINUTES."""
    max_age = timedelta(minutes=config.ROOM_TIMEOUT_MINUTES)
    while True:
        try:
            await asyncio.sleep(config.CLEANUP_INTERVAL_SECONDS)
            removed = room_manager.cleanup_stale_rooms(max_age)
            if removed:
                logger.info(f"Cleaned up {len(removed)} stale rooms")
            if _state_cache:
                for code in removed:
                    await _state_cache.delete_game(code)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room cleanup failed: {e}")


async def _init_state_cache():
    """Connect the Redis state cache; the server runs without it on failure."""
    global _state_cache
    try:
        _state_cache = await get_state_cache(config.REDIS_URL)
    except Exception as e:
        logger.warning(f"Redis connection failed: {e} - game snapshots disabled")
        _state_cache = None


async def _restore_rooms():
    """Rebuild rooms for unfinished games cached by a previous process."""
    restored = 0
    for code in await _state_cache.get_active_games():
        try:
            game = await _state_cache.load_game(code)
        except Exception as e:
            logger.warning(f"Unreadable snapshot for {code}: {e}")
            game = None
        if game is None or game.status == GameStatus.FINISHED:
            await _state_cache.delete_game(code)
            continue
        room_manager.restore_room(game)
        restored += 1
    if restored:
        logger.info(f"Restored {restored} rooms from the state cache")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    global _cleanup_task

    if config.REDIS_URL:
        await _init_state_cache()
        if _state_cache:
            try:
                await _restore_rooms()
            except Exception as e:
                logger.warning(f"Room restore failed: {e}")
    else:
        logger.info("REDIS_URL not configured - game snapshots disabled")

    set_health_dependencies(
        redis_client=_state_cache.redis if _state_cache else None,
        room_manager=room_manager,
    )

    _cleanup_task = asyncio.create_task(_periodic_room_cleanup())
    logger.info(f"SnapMatch server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    _cleanup_task.cancel()
    await _close_all_websockets()
    await close_state_cache()
    logger.info("Shutdown complete")


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for player in room.players.values():
            if player.websocket:
                try:
                    await player.websocket.close(code=1001, reason="Server shutting down")
                except Exception as e:
                    logger.debug(f"Closing websocket for {player.id} failed: {e}")
    logger.info("All WebSocket connections closed")


app = FastAPI(
    title="SnapMatch",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    request_id_var.set(connection_id)
    player_id_var.set(connection_id)
    logger.debug("WebSocket connected")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
        persist_game=persist_game,
        handle_player_leave=handle_player_leave,
    )

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await websocket.send_json({
                    "type": "error",
                    "code": "INVALID_MESSAGE",
                    "message": "Messages must be JSON objects",
                })
                continue
            message_type = data.get("type")
            handler = HANDLERS.get(message_type) if isinstance(message_type, str) else None
            if handler:
                await handler(data, ctx, **handler_deps)
                game_code_var.set(ctx.current_room.code if ctx.current_room else None)
                player_id_var.set(ctx.player_id)
            else:
                await websocket.send_json({
                    "type": "error",
                    "code": "UNKNOWN_MESSAGE",
                    "message": f"Unknown message type: {message_type}",
                })
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected")
    except Exception as e:
        # The seat is released below either way.
        logger.error(f"Closing connection after handler failure: {e}", exc_info=True)
        try:
            await websocket.close(code=1011, reason="Internal error")
        except Exception as close_error:
            logger.debug(f"Close after failure failed: {close_error}")

    if ctx.current_room:
        await handle_player_leave(ctx.current_room, ctx.player_id)


async def broadcast_game_state(room: Room):
    """Send each connected player their own view of the game."""
    for pid, player in room.players.items():
        if not player.websocket:
            continue
        try:
            await player.websocket.send_json({
                "type": "game_state",
                "game_state": room.game.get_state(pid),
            })
        except Exception as e:
            logger.debug(f"Game state to {pid} failed: {e}", extra={"game_code": room.code})


async def persist_game(room: Room):
    """Mirror the game's snapshot to Redis when the cache is enabled."""
    if _state_cache is None:
        return
    try:
        await _state_cache.save_game(room.game)
    except Exception as e:
        logger.warning(f"Failed to cache game snapshot: {e}", extra={"game_code": room.code})


async def handle_player_leave(room: Room, player_id: str):
    """Handle a player leaving a room."""
    async with room.game_lock:
        room_player = room.remove_player(player_id)

    if room.is_empty():
        room_manager.remove_room(room.code)
        if _state_cache:
            await _state_cache.delete_game(room.code)
    elif room_player:
        await room.broadcast({
            "type": "player_left",
            "player_id": player_id,
            "player_name": room_player.name,
            "players": room.player_list(),
        })
        await broadcast_game_state(room)
        await persist_game(room)


# Serve static files if client directory exists
client_path = os.path.join(os.path.dirname(__file__), "..", "client")
if os.path.exists(client_path):
    @app.get("/")
    async def serve_index():
        return FileResponse(os.path.join(client_path, "index.html"))

    app.mount("/", StaticFiles(directory=client_path), name="static")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting SnapMatch server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
