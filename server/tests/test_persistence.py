"""
Tests for the Redis game snapshot cache.

These tests cover:
- StateCache: saving, loading and deleting Game snapshots
- Active-game tracking
- Snapshot contents surviving the JSON round trip
- Rebuilding rooms from the cache at startup

Redis is replaced with an in-memory mock.
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

import main
from game import Game, GameStatus
from stores.state_cache import StateCache


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def mock_redis():
    """Create a mock Redis client for testing."""
    mock = AsyncMock()

    # Track stored data
    data = {}
    sets = {}
    expiries = {}

    def store_set(key, value, ex=None):
        data[key] = value.encode() if isinstance(value, str) else value
        if ex is not None:
            expiries[key] = ex

    def store_sadd(key, *values):
        sets.setdefault(key, set()).update(v.encode() if isinstance(v, str) else v for v in values)

    def store_delete(*keys):
        for key in keys:
            data.pop(key, None)

    def store_srem(key, *values):
        sets.get(key, set()).difference_update(v.encode() if isinstance(v, str) else v for v in values)

    async def mock_get(key):
        return data.get(key)

    async def mock_smembers(key):
        return set(sets.get(key, set()))

    def mock_pipeline():
        # Commands queue synchronously; execute() is the only awaited call.
        pipe = MagicMock()
        pipe.set = MagicMock(side_effect=store_set)
        pipe.sadd = MagicMock(side_effect=store_sadd)
        pipe.delete = MagicMock(side_effect=store_delete)
        pipe.srem = MagicMock(side_effect=store_srem)
        pipe.execute = AsyncMock(return_value=[])
        return pipe

    mock.get = mock_get
    mock.smembers = mock_smembers
    mock.pipeline = mock_pipeline
    mock.ping = AsyncMock(return_value=True)
    mock.close = AsyncMock()

    # Store references for assertions
    mock._data = data
    mock._sets = sets
    mock._expiries = expiries

    return mock


@pytest.fixture
def state_cache(mock_redis):
    """Create a StateCache with mock Redis."""
    return StateCache(mock_redis)


@pytest.fixture
def started_game():
    game = Game(code="ABCD", seed=7)
    game.add_player("p1", "Alice")
    game.add_player("p2", "Bob")
    game.start(categories=["Movies", "Books", "Foods", "Animals"], wild_ratio=0.5)
    game.draw_card("p1")
    return game


# =============================================================================
# StateCache Tests
# =============================================================================

class TestStateCache:
    """Tests for StateCache class."""

    @pytest.mark.asyncio
    async def test_save_game_stores_snapshot(self, state_cache, mock_redis, started_game):
        await state_cache.save_game(started_game)

        raw = mock_redis._data["snapmatch:game:ABCD"]
        assert json.loads(raw)["game_id"] == started_game.game_id
        assert mock_redis._expiries["snapmatch:game:ABCD"] == 24 * 60 * 60

    @pytest.mark.asyncio
    async def test_save_game_marks_active(self, state_cache, started_game):
        await state_cache.save_game(started_game)

        assert await state_cache.get_active_games() == {"ABCD"}

    @pytest.mark.asyncio
    async def test_load_game_restores_state(self, state_cache, started_game):
        await state_cache.save_game(started_game)

        restored = await state_cache.load_game("ABCD")

        assert restored.game_id == started_game.game_id
        assert restored.status == GameStatus.PLAYING
        assert restored.mode == started_game.mode
        assert restored.players == started_game.players
        assert restored.deck == started_game.deck
        assert restored.equivalence == started_game.equivalence

    @pytest.mark.asyncio
    async def test_load_missing_game(self, state_cache):
        assert await state_cache.load_game("ZZZZ") is None

    @pytest.mark.asyncio
    async def test_save_overwrites_previous_snapshot(self, state_cache, started_game):
        await state_cache.save_game(started_game)
        started_game.draw_card("p2")
        await state_cache.save_game(started_game)

        restored = await state_cache.load_game("ABCD")

        assert restored.deck.index == 2

    @pytest.mark.asyncio
    async def test_delete_game(self, state_cache, mock_redis, started_game):
        await state_cache.save_game(started_game)

        await state_cache.delete_game("ABCD")

        assert "snapmatch:game:ABCD" not in mock_redis._data
        assert await state_cache.get_active_games() == set()
        assert await state_cache.load_game("ABCD") is None

    @pytest.mark.asyncio
    async def test_close(self, state_cache, mock_redis):
        await state_cache.close()
        mock_redis.close.assert_awaited_once()


# =============================================================================
# Startup recovery
# =============================================================================

class TestRoomRestore:
    """Rooms rebuilt from cached snapshots when the server starts."""

    @pytest.fixture
    def server(self, state_cache, monkeypatch):
        monkeypatch.setattr(main, "_state_cache", state_cache)
        main.room_manager.rooms.clear()
        yield main
        main.room_manager.rooms.clear()

    @pytest.mark.asyncio
    async def test_restores_unfinished_games(self, server, state_cache, started_game):
        await state_cache.save_game(started_game)

        await server._restore_rooms()

        room = server.room_manager.get_room("ABCD")
        assert room.game.game_id == started_game.game_id
        assert room.game.deck == started_game.deck
        assert set(room.players) == {"p1", "p2"}
        assert all(p.websocket is None for p in room.players.values())

    @pytest.mark.asyncio
    async def test_drops_finished_and_missing_snapshots(self, server, state_cache, mock_redis):
        finished = Game(code="WXYZ", seed=1)
        finished.add_player("p1", "Alice")
        finished.add_player("p2", "Bob")
        finished.start(categories=["Movies", "Books"])
        finished.finish()
        await state_cache.save_game(finished)
        mock_redis._sets[StateCache.ACTIVE_GAMES_KEY].add(b"GONE")

        await server._restore_rooms()

        assert server.room_manager.rooms == {}
        assert await state_cache.get_active_games() == set()
