"""
Test suite for Room and RoomManager CRUD operations.

Covers:
- Room creation, code alphabet and uniqueness
- Player add/remove with host reassignment
- Case-insensitive room lookup
- Restoring cached games and reconnecting seats by name
- Event log and stale-room cleanup
- Message broadcast and send_to

Run with: pytest test_room.py -v
"""

from datetime import datetime, timedelta, timezone

import pytest

from constants import ROOM_CODE_CHARS, ROOM_CODE_LENGTH
from deck import RuleMode
from errors import GameError
from game import Game
from models.events import EventType
from room import Room, RoomPlayer, RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)


class BrokenWebSocket:
    """WebSocket whose peer has gone away."""

    async def send_json(self, data: dict):
        raise RuntimeError("connection closed")


# =============================================================================
# RoomManager tests
# =============================================================================

class TestRoomManagerCreate:

    def test_create_room_returns_room(self):
        rm = RoomManager()
        room = rm.create_room()
        assert room is not None
        assert len(room.code) == ROOM_CODE_LENGTH
        assert room.code in rm.rooms
        assert room.game.code == room.code

    def test_code_avoids_ambiguous_letters(self):
        rm = RoomManager()
        for _ in range(50):
            code = rm.create_room().code
            assert all(c in ROOM_CODE_CHARS for c in code)
            assert "I" not in code and "O" not in code

    def test_create_multiple_rooms_unique_codes(self):
        rm = RoomManager()
        codes = set()
        for _ in range(20):
            room = rm.create_room()
            codes.add(room.code)
        assert len(codes) == 20

    def test_create_room_with_mode(self):
        rm = RoomManager()
        room = rm.create_room(mode="single_active")
        assert room.game.mode == RuleMode.SINGLE_ACTIVE

    def test_create_room_unknown_mode(self):
        rm = RoomManager()
        with pytest.raises(ValueError):
            rm.create_room(mode="chaos")
        assert rm.rooms == {}

    def test_remove_room(self):
        rm = RoomManager()
        room = rm.create_room()
        code = room.code
        rm.remove_room(code)
        assert code not in rm.rooms

    def test_remove_nonexistent_room(self):
        rm = RoomManager()
        rm.remove_room("ZZZZ")  # Should not raise


class TestRoomManagerLookup:

    def test_get_room_case_insensitive(self):
        rm = RoomManager()
        room = rm.create_room()
        code = room.code

        assert rm.get_room(code.lower()) is room
        assert rm.get_room(f" {code} ") is room

    def test_get_room_not_found(self):
        rm = RoomManager()
        assert rm.get_room("ZZZZ") is None

    def test_restore_room_starts_disconnected(self):
        source = RoomManager().create_room()
        source.add_player("p1", "Alice", MockWebSocket())
        source.add_player("p2", "Bob", MockWebSocket())
        source.game.start(categories=["Movies", "Books"])

        rm = RoomManager()
        room = rm.restore_room(Game.from_dict(source.game.to_dict()))

        assert rm.get_room(source.code) is room
        assert list(room.players) == ["p1", "p2"]
        assert room.players["p1"].is_host is True
        assert all(not p["connected"] for p in room.player_list())


class TestRoomCleanup:

    def test_stale_rooms_removed(self):
        rm = RoomManager()
        stale = rm.create_room()
        fresh = rm.create_room()
        stale.last_activity = datetime.now(timezone.utc) - timedelta(hours=25)

        removed = rm.cleanup_stale_rooms(timedelta(hours=24))

        assert removed == [stale.code]
        assert stale.code not in rm.rooms
        assert fresh.code in rm.rooms

    def test_game_events_refresh_activity(self):
        rm = RoomManager()
        room = rm.create_room()
        room.last_activity = datetime.now(timezone.utc) - timedelta(hours=25)

        room.add_player("p1", "Alice", MockWebSocket())

        assert rm.cleanup_stale_rooms(timedelta(hours=24)) == []


# =============================================================================
# Room player management
# =============================================================================

class TestRoomPlayers:

    def test_add_player_first_is_host(self):
        room = Room(code="TEST")
        rp = room.add_player("p1", "Alice", MockWebSocket())
        assert rp.is_host is True
        assert room.game.host_id == "p1"

    def test_add_player_second_is_not_host(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        rp2 = room.add_player("p2", "Bob", MockWebSocket())
        assert rp2.is_host is False

    def test_rejected_player_not_added(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        with pytest.raises(GameError):
            room.add_player("p2", "ALICE", MockWebSocket())
        assert "p2" not in room.players

    def test_remove_player(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        removed = room.remove_player("p1")
        assert removed.id == "p1"
        assert "p1" not in room.players
        assert room.game.players == []

    def test_remove_nonexistent_player(self):
        room = Room(code="TEST")
        assert room.remove_player("nobody") is None

    def test_host_reassignment_on_remove(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        room.add_player("p2", "Bob", MockWebSocket())

        room.remove_player("p1")
        assert room.players["p2"].is_host is True
        assert room.game.host_id == "p2"

    def test_is_empty(self):
        room = Room(code="TEST")
        assert room.is_empty() is True
        room.add_player("p1", "Alice", MockWebSocket())
        assert room.is_empty() is False

    def test_player_list(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        room.add_player("p2", "Bob", None)

        plist = room.player_list()
        assert [p["name"] for p in plist] == ["Alice", "Bob"]
        assert plist[0]["is_host"] is True
        assert plist[0]["score"] == 0
        assert plist[0]["connected"] is True
        assert plist[1]["connected"] is False

    def test_events_logged(self):
        rm = RoomManager()
        room = rm.create_room()
        room.add_player("p1", "Alice", MockWebSocket())

        types = [e.event_type for e in room.events]
        assert types == [EventType.GAME_CREATED, EventType.PLAYER_JOINED]

    def test_events_since(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())
        room.add_player("p2", "Bob", MockWebSocket())

        assert [e.sequence_num for e in room.events_since(0)] == [1, 2]
        assert [e.event_type for e in room.events_since(1)] == [EventType.PLAYER_JOINED]
        assert room.events_since(2) == []

    def test_reconnect_player_by_name(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", None)
        ws = MockWebSocket()

        seat = room.reconnect_player(" alice ", ws)

        assert seat is room.players["p1"]
        assert seat.websocket is ws

    def test_reconnect_ignores_connected_seats(self):
        room = Room(code="TEST")
        room.add_player("p1", "Alice", MockWebSocket())

        assert room.reconnect_player("Alice", MockWebSocket()) is None
        assert room.reconnect_player(None, MockWebSocket()) is None


# =============================================================================
# Broadcast / send_to
# =============================================================================

class TestMessaging:

    @pytest.mark.asyncio
    async def test_broadcast_to_all(self):
        room = Room(code="TEST")
        ws1 = MockWebSocket()
        ws2 = MockWebSocket()
        room.add_player("p1", "Alice", ws1)
        room.add_player("p2", "Bob", ws2)

        await room.broadcast({"type": "test_msg"})
        assert len(ws1.messages) == 1
        assert len(ws2.messages) == 1
        assert ws1.messages[0]["type"] == "test_msg"

    @pytest.mark.asyncio
    async def test_broadcast_excludes_player(self):
        room = Room(code="TEST")
        ws1 = MockWebSocket()
        ws2 = MockWebSocket()
        room.add_player("p1", "Alice", ws1)
        room.add_player("p2", "Bob", ws2)

        await room.broadcast({"type": "test_msg"}, exclude="p1")
        assert len(ws1.messages) == 0
        assert len(ws2.messages) == 1

    @pytest.mark.asyncio
    async def test_broadcast_survives_dead_connection(self):
        room = Room(code="TEST")
        ws2 = MockWebSocket()
        room.add_player("p1", "Alice", BrokenWebSocket())
        room.add_player("p2", "Bob", ws2)

        await room.broadcast({"type": "test_msg"})
        assert len(ws2.messages) == 1

    @pytest.mark.asyncio
    async def test_send_to_specific_player(self):
        room = Room(code="TEST")
        ws1 = MockWebSocket()
        ws2 = MockWebSocket()
        room.add_player("p1", "Alice", ws1)
        room.add_player("p2", "Bob", ws2)

        await room.send_to("p1", {"type": "private_msg"})
        assert len(ws1.messages) == 1
        assert len(ws2.messages) == 0

    @pytest.mark.asyncio
    async def test_send_to_nonexistent_player(self):
        room = Room(code="TEST")
        await room.send_to("nobody", {"type": "test"})  # Should not raise

    @pytest.mark.asyncio
    async def test_send_to_disconnected_is_noop(self):
        room = Room(code="TEST")
        room.players["p9"] = RoomPlayer(id="p9", name="Gone", websocket=None)
        await room.send_to("p9", {"type": "test"})  # Should not raise
