"""
Room management for multiplayer SnapMatch games.

This module handles room creation, player management, and WebSocket
communication for multiplayer game sessions.

A Room contains:
    - A unique 4-letter code for joining
    - A collection of RoomPlayers (connection-level info)
    - A Game instance with the actual game state
    - A lock that serializes every mutation of that game
"""

import asyncio
import logging
import random
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import WebSocket

from constants import ROOM_CODE_CHARS, ROOM_CODE_LENGTH
from deck import RuleMode
from game import Game
from models.events import GameEvent

logger = logging.getLogger(__name__)

EVENT_LOG_SIZE = 200


@dataclass
class RoomPlayer:
    """
    A player in a game room (lobby-level representation).

    This is separate from engine.Player - RoomPlayer tracks the WebSocket
    connection and host status, while engine.Player tracks the card stack
    and score.

    Attributes:
        id: Unique player identifier (the connection ID).
        name: Display name.
        websocket: WebSocket connection (None once disconnected).
        is_host: Whether this player can start and end the game.
    """

    id: str
    name: str
    websocket: Optional[WebSocket] = None
    is_host: bool = False


@dataclass
class Room:
    """
    A game room/lobby that hosts one SnapMatch game.

    Attributes:
        code: 4-letter room code for joining (e.g., "ABCD").
        players: Dict mapping player IDs to RoomPlayer objects.
        game: The Game instance containing actual game state.
        game_lock: asyncio.Lock serializing draws, claims and resolutions.
        created_at: When the room was created.
        last_activity: Last time the game emitted an event.
        events: Most recent game events, oldest first.
    """

    code: str
    players: dict[str, RoomPlayer] = field(default_factory=dict)
    game: Game = field(default_factory=Game)
    game_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_activity: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    events: deque = field(default_factory=lambda: deque(maxlen=EVENT_LOG_SIZE))

    def __post_init__(self) -> None:
        self.game.code = self.code
        self.game.set_event_emitter(self.record_event)

    def record_event(self, event: GameEvent) -> None:
        """Keep a game event in the room's log."""
        self.events.append(event)
        self.last_activity = event.timestamp
        logger.debug(
            f"{event.event_type.value} #{event.sequence_num}",
            extra={"game_code": self.code, "player_id": event.player_id},
        )

    def events_since(self, sequence_num: int = 0) -> list[GameEvent]:
        """Logged events newer than ``sequence_num``, oldest first."""
        return [event for event in self.events if event.sequence_num > sequence_num]

    def reconnect_player(self, name: str, websocket: WebSocket) -> Optional[RoomPlayer]:
        """
        Hand a disconnected seat back to a returning player.

        Seats are matched by name, case-insensitively. Rooms restored from
        the state cache start with every seat disconnected.

        Returns:
            The reattached RoomPlayer, or None if no disconnected seat has that name.
        """
        if not isinstance(name, str):
            return None
        name = name.strip().lower()
        for player in self.players.values():
            if player.websocket is None and player.name.lower() == name:
                player.websocket = websocket
                return player
        return None

    def add_player(
        self,
        player_id: str,
        name: str,
        websocket: Optional[WebSocket] = None,
    ) -> RoomPlayer:
        """
        Add a player to the room and its game.

        The first player to join becomes the host.

        Raises:
            GameError: If the game refuses the player (started, full, name taken).
        """
        game_player = self.game.add_player(player_id, name)
        room_player = RoomPlayer(
            id=player_id,
            name=game_player.name,
            websocket=websocket,
            is_host=game_player.is_host,
        )
        self.players[player_id] = room_player
        return room_player

    def remove_player(self, player_id: str) -> Optional[RoomPlayer]:
        """
        Remove a player from the room.

        Handles host reassignment if the host leaves.

        Returns:
            The removed RoomPlayer, or None if not found.
        """
        if player_id not in self.players:
            return None

        room_player = self.players.pop(player_id)
        self.game.remove_player(player_id)

        for player in self.players.values():
            player.is_host = player.id == self.game.host_id

        return room_player

    def get_player(self, player_id: str) -> Optional[RoomPlayer]:
        """Get a player by ID, or None if not found."""
        return self.players.get(player_id)

    def is_empty(self) -> bool:
        """Check if the room has no players."""
        return len(self.players) == 0

    def player_list(self) -> list[dict]:
        """Get list of players for lobby display, in join order."""
        result = []
        for game_player in self.game.players:
            room_player = self.players.get(game_player.id)
            result.append({
                "id": game_player.id,
                "name": game_player.name,
                "is_host": game_player.is_host,
                "score": game_player.score,
                "connected": bool(room_player and room_player.websocket),
            })
        return result

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connected player in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id, player in self.players.items():
            if player_id != exclude and player.websocket:
                try:
                    await player.websocket.send_json(message)
                except Exception as e:
                    logger.debug(f"Broadcast to {player_id} failed: {e}", extra={"game_code": self.code})

    async def send_to(self, player_id: str, message: dict) -> None:
        """Send a message to a specific player."""
        player = self.players.get(player_id)
        if player and player.websocket:
            try:
                await player.websocket.send_json(message)
            except Exception as e:
                logger.debug(f"Send to {player_id} failed: {e}", extra={"game_code": self.code})


class RoomManager:
    """
    Manages all active game rooms.

    Provides room creation with unique codes, lookup, and cleanup.
    A single RoomManager instance is used by the server.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, Room] = {}

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a unique room code (no I or O)."""
        for _ in range(max_attempts):
            code = "".join(random.choices(ROOM_CODE_CHARS, k=ROOM_CODE_LENGTH))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(self, mode: Optional[RuleMode] = None) -> Room:
        """
        Create a new room with a unique code.

        Args:
            mode: Rule mode for the room's game (config default if None).
        """
        code = self._generate_code()
        game = Game(mode=mode) if mode else Game()
        room = Room(code=code, game=game)
        game.emit_game_created()
        self.rooms[code] = room
        logger.info(f"Room created ({game.mode.value})", extra={"game_code": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by its code (case-insensitive)."""
        return self.rooms.get(code.strip().upper())

    def remove_room(self, code: str) -> None:
        """Delete a room."""
        if code in self.rooms:
            del self.rooms[code]
            logger.info("Room removed", extra={"game_code": code})

    def restore_room(self, game: Game) -> Room:
        """
        Register a room for a game loaded from the state cache.

        Every seat starts disconnected until its player joins again by name.
        """
        room = Room(code=game.code, game=game)
        for player in game.players:
            room.players[player.id] = RoomPlayer(id=player.id, name=player.name, is_host=player.is_host)
        self.rooms[room.code] = room
        logger.info(f"Room restored ({game.status.value})", extra={"game_code": room.code})
        return room

    def cleanup_stale_rooms(self, max_age: timedelta) -> list[str]:
        """
        Remove rooms with no game activity for longer than ``max_age``.

        Returns:
            Codes of the removed rooms.
        """
        cutoff = datetime.now(timezone.utc) - max_age
        stale = [code for code, room in self.rooms.items() if room.last_activity < cutoff]
        for code in stale:
            self.remove_room(code)
        return stale
