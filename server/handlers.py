"""WebSocket message handlers for SnapMatch.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.

Every game mutation runs under ``room.game_lock`` so that two players
drawing at the same moment cannot both take the same deck position, and
a win cannot be resolved against a stack another draw is changing.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import WebSocket

from constants import ROOM_CODE_LENGTH
from deck import WildItem
from errors import GameError
from logging_config import get_logger
from room import Room

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[Room] = None


async def send_error(ctx: ConnectionContext, message: str, code: str = "ERROR") -> None:
    await ctx.websocket.send_json({"type": "error", "code": code, "message": message})


async def send_game_error(ctx: ConnectionContext, error: GameError) -> None:
    await send_error(ctx, error.message, error.code)


def _require_host(ctx: ConnectionContext) -> bool:
    room_player = ctx.current_room.get_player(ctx.player_id)
    return bool(room_player and room_player.is_host)


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    if ctx.current_room:
        await send_error(ctx, "Already in a room", "ALREADY_IN_ROOM")
        return

    try:
        room = room_manager.create_room(mode=data.get("mode"))
    except ValueError:
        await send_error(ctx, f"Unknown rule mode: {data.get('mode')}", "INVALID_MODE")
        return

    try:
        room.add_player(ctx.player_id, data.get("player_name", ""), ctx.websocket)
    except GameError as e:
        room_manager.remove_room(room.code)
        await send_game_error(ctx, e)
        return
    ctx.current_room = room

    logger.with_context(game_code=room.code, player_id=ctx.player_id).info("Host created room")

    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": room.code,
        "player_id": ctx.player_id,
        "mode": room.game.mode.value,
    })

    await room.broadcast({
        "type": "player_joined",
        "players": room.player_list(),
    })


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager, **kw) -> None:
    if ctx.current_room:
        await send_error(ctx, "Already in a room", "ALREADY_IN_ROOM")
        return

    room_code = data.get("room_code") or ""
    room_code = room_code.strip().upper() if isinstance(room_code, str) else ""
    if len(room_code) != ROOM_CODE_LENGTH:
        await send_error(ctx, f"Valid {ROOM_CODE_LENGTH}-letter game code is required", "INVALID_CODE")
        return

    room = room_manager.get_room(room_code)
    if not room:
        await send_error(ctx, "Game not found", "ROOM_NOT_FOUND")
        return

    player_name = data.get("player_name", "")
    async with room.game_lock:
        # A disconnected seat with this name is taken back rather than joined anew.
        returning = room.reconnect_player(player_name, ctx.websocket)
        if returning is None:
            try:
                room.add_player(ctx.player_id, player_name, ctx.websocket)
            except GameError as e:
                await send_game_error(ctx, e)
                return
        else:
            ctx.player_id = returning.id
    ctx.current_room = room

    logger.with_context(game_code=room.code, player_id=ctx.player_id).info(
        "Player rejoined room" if returning else "Player joined room"
    )

    await ctx.websocket.send_json({
        "type": "room_joined",
        "room_code": room.code,
        "player_id": ctx.player_id,
        "mode": room.game.mode.value,
        "reconnected": returning is not None,
    })

    await room.broadcast({
        "type": "player_joined",
        "players": room.player_list(),
    })

    if returning:
        await ctx.websocket.send_json({
            "type": "game_state",
            "game_state": room.game.get_state(ctx.player_id),
        })


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, broadcast_game_state, persist_game, **kw) -> None:
    if not ctx.current_room:
        return

    if not _require_host(ctx):
        await send_error(ctx, "Only the host can start the game", "NOT_HOST")
        return

    room = ctx.current_room
    async with room.game_lock:
        try:
            room.game.start(
                categories=data.get("categories"),
                wild_ratio=data.get("wild_ratio"),
                mode=data.get("mode"),
            )
        except GameError as e:
            await send_game_error(ctx, e)
            return
        except (TypeError, ValueError) as e:
            await send_error(ctx, f"Invalid game settings: {e}", "INVALID_SETTINGS")
            return

    logger.info(
        f"Game started with {len(room.game.players)} players, {len(room.game.deck)} cards",
        extra={"game_code": room.code},
    )

    await room.broadcast({
        "type": "game_started",
        "mode": room.game.mode.value,
        "deck_size": len(room.game.deck),
        "players": room.player_list(),
    })
    await broadcast_game_state(room)
    await persist_game(room)


async def handle_end_game(data: dict, ctx: ConnectionContext, *, broadcast_game_state, persist_game, **kw) -> None:
    if not ctx.current_room:
        return

    if not _require_host(ctx):
        await send_error(ctx, "Only the host can end the game", "NOT_HOST")
        return

    room = ctx.current_room
    async with room.game_lock:
        try:
            room.game.finish()
        except GameError as e:
            await send_game_error(ctx, e)
            return

    await room.broadcast({
        "type": "game_over",
        "standings": [
            {"id": p.id, "name": p.name, "score": p.score}
            for p in room.game.standings()
        ],
    })
    await broadcast_game_state(room)
    await persist_game(room)


# ---------------------------------------------------------------------------
# Gameplay handlers
# ---------------------------------------------------------------------------

async def handle_draw(data: dict, ctx: ConnectionContext, *, broadcast_game_state, persist_game, **kw) -> None:
    if not ctx.current_room:
        return

    room = ctx.current_room
    async with room.game_lock:
        try:
            outcome = room.game.draw_card(ctx.player_id)
        except GameError as e:
            await send_game_error(ctx, e)
            return

    drawer = room.game.get_player(ctx.player_id)
    wild = outcome.item.to_dict() if isinstance(outcome.item, WildItem) else None
    card = outcome.visible_card.to_dict() if outcome.visible_card else None

    # The drawer gets the match from their own point of view.
    match_for_drawer = None
    if outcome.match and outcome.match.involves(ctx.player_id):
        opponent_id, opponent_name = outcome.match.opponent_of(ctx.player_id)
        match_for_drawer = {
            "opponent_id": opponent_id,
            "opponent_name": opponent_name,
            "symbol": outcome.match.symbol,
        }

    await ctx.websocket.send_json({
        "type": "draw_result",
        "card": card,
        "wild": wild,
        "match": match_for_drawer,
    })

    await room.broadcast({
        "type": "card_drawn",
        "player_id": ctx.player_id,
        "player_name": drawer.name if drawer else None,
        "card": card,
        "wild": wild,
        "equivalence": room.game.equivalence.to_dict(),
        "deck_remaining": room.game.deck.remaining,
    })

    if outcome.match:
        await room.broadcast({"type": "match_found", "match": outcome.match.to_dict()})

    await broadcast_game_state(room)
    await persist_game(room)


async def handle_claim_win(data: dict, ctx: ConnectionContext, *, persist_game, **kw) -> None:
    if not ctx.current_room:
        return

    opponent_id = data.get("opponent_id")
    if not opponent_id or not isinstance(opponent_id, str):
        await send_error(ctx, "Opponent ID required", "INVALID_CLAIM")
        return

    room = ctx.current_room
    async with room.game_lock:
        try:
            claim = room.game.claim_win(ctx.player_id, opponent_id)
        except GameError as e:
            await send_game_error(ctx, e)
            return

    claimer = room.game.get_player(ctx.player_id)
    await room.send_to(opponent_id, {
        "type": "win_claim",
        "claimer_id": claim.claimer_id,
        "claimer_name": claimer.name if claimer else None,
        "symbol": claim.symbol,
    })
    await ctx.websocket.send_json({"type": "claim_pending", "claim": claim.to_dict()})
    await persist_game(room)


async def handle_respond_claim(data: dict, ctx: ConnectionContext, *, broadcast_game_state, persist_game, **kw) -> None:
    if not ctx.current_room:
        return

    claimer_id = data.get("claimer_id")
    if not claimer_id or not isinstance(claimer_id, str):
        await send_error(ctx, "Claimer ID required", "INVALID_CLAIM")
        return
    accept = bool(data.get("accept", False))

    room = ctx.current_room
    async with room.game_lock:
        try:
            resolution = room.game.respond_to_claim(ctx.player_id, claimer_id, accept)
        except GameError as e:
            await send_game_error(ctx, e)
            return

    if resolution is None:
        await room.broadcast({
            "type": "win_rejected",
            "claimer_id": claimer_id,
            "opponent_id": ctx.player_id,
        })
        await persist_game(room)
        return

    logger.info(
        f"{resolution.winner_id} beat {resolution.loser_id}, score now {resolution.new_score}",
        extra={"game_code": room.code},
    )

    cascading = resolution.cascading_match
    await room.broadcast({
        "type": "win_confirmed",
        "winner_id": resolution.winner_id,
        "loser_id": resolution.loser_id,
        "new_score": resolution.new_score,
        "revealed_card": resolution.revealed_card.to_dict() if resolution.revealed_card else None,
        "cascading_match": cascading.to_dict() if cascading else None,
    })
    if cascading:
        await room.broadcast({"type": "match_found", "match": cascading.to_dict(), "cascading": True})

    await broadcast_game_state(room)
    await persist_game(room)


async def handle_get_state(data: dict, ctx: ConnectionContext, **kw) -> None:
    if not ctx.current_room:
        return
    await ctx.websocket.send_json({
        "type": "game_state",
        "game_state": ctx.current_room.game.get_state(ctx.player_id),
    })


async def handle_get_events(data: dict, ctx: ConnectionContext, **kw) -> None:
    """Replay logged events after the client's last seen sequence number."""
    if not ctx.current_room:
        return
    since = data.get("since", 0)
    if isinstance(since, bool) or not isinstance(since, int):
        await send_error(ctx, "since must be an event sequence number", "INVALID_REQUEST")
        return
    await ctx.websocket.send_json({
        "type": "events",
        "events": [e.to_dict() for e in ctx.current_room.events_since(since)],
    })


# ---------------------------------------------------------------------------
# Leave handlers
# ---------------------------------------------------------------------------

async def handle_leave_room(data: dict, ctx: ConnectionContext, *, handle_player_leave, **kw) -> None:
    if ctx.current_room:
        await handle_player_leave(ctx.current_room, ctx.player_id)
        ctx.current_room = None


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "start_game": handle_start_game,
    "end_game": handle_end_game,
    "draw": handle_draw,
    "claim_win": handle_claim_win,
    "respond_claim": handle_respond_claim,
    "get_state": handle_get_state,
    "get_events": handle_get_events,
    "leave_room": handle_leave_room,
}
