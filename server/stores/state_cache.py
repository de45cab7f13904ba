"""
Redis-backed snapshot cache for live SnapMatch games.

Every committed draw, claim or resolution can be mirrored here so another
process (or a restarted one) can inspect or restore a game. Redis provides:
- Sub-millisecond reads/writes for game snapshots
- TTL expiration for abandoned games
- Atomic multi-key updates via pipelines

This is a CACHE, not the source of truth. The in-memory Room is
authoritative while the server runs.

Key patterns:
- snapmatch:game:{code}     -> JSON (Game.to_dict snapshot)
- snapmatch:games:active    -> Set (codes of cached games)
"""

import json
import logging
from datetime import timedelta
from typing import Optional

import redis.asyncio as redis

from game import Game

logger = logging.getLogger(__name__)


class StateCache:
    """Redis-backed game snapshot cache."""

    # Key patterns
    GAME_KEY = "snapmatch:game:{code}"
    ACTIVE_GAMES_KEY = "snapmatch:games:active"

    # Matches the stale-room cleanup window
    GAME_TTL = timedelta(hours=24)

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize state cache with Redis client.

        Args:
            redis_client: Async Redis client.
        """
        self.redis = redis_client

    @classmethod
    async def create(cls, redis_url: str) -> "StateCache":
        """
        Create a StateCache with a new Redis connection.

        Args:
            redis_url: Redis connection URL.

        Returns:
            Configured StateCache instance.
        """
        client = redis.from_url(redis_url, decode_responses=False)
        await client.ping()
        logger.info("StateCache connected to Redis")
        return cls(client)

    async def close(self) -> None:
        """Close the Redis connection."""
        await self.redis.close()

    async def save_game(self, game: Game) -> None:
        """
        Store a snapshot of the game and mark it active.

        Args:
            game: The game to snapshot.
        """
        pipe = self.redis.pipeline()
        pipe.set(
            self.GAME_KEY.format(code=game.code),
            json.dumps(game.to_dict()),
            ex=int(self.GAME_TTL.total_seconds()),
        )
        pipe.sadd(self.ACTIVE_GAMES_KEY, game.code)
        await pipe.execute()
        logger.debug("Saved game snapshot", extra={"game_code": game.code})

    async def load_game(self, code: str) -> Optional[Game]:
        """
        Rebuild a game from its cached snapshot.

        Args:
            code: Room code of the game.

        Returns:
            The restored Game, or None if nothing is cached.
        """
        data = await self.redis.get(self.GAME_KEY.format(code=code))
        if not data:
            return None
        if isinstance(data, bytes):
            data = data.decode()
        return Game.from_dict(json.loads(data))

    async def delete_game(self, code: str) -> None:
        """Remove a game's snapshot and its active marker."""
        pipe = self.redis.pipeline()
        pipe.delete(self.GAME_KEY.format(code=code))
        pipe.srem(self.ACTIVE_GAMES_KEY, code)
        await pipe.execute()
        logger.debug("Deleted game snapshot", extra={"game_code": code})

    async def get_active_games(self) -> set[str]:
        """Get the codes of all cached games."""
        codes = await self.redis.smembers(self.ACTIVE_GAMES_KEY)
        return {c.decode() if isinstance(c, bytes) else c for c in codes}


# Global instance
_state_cache: Optional[StateCache] = None


async def get_state_cache(redis_url: str) -> StateCache:
    """
    Get or create the global state cache instance.

    Args:
        redis_url: Redis connection URL.

    Returns:
        StateCache instance.
    """
    global _state_cache
    if _state_cache is None:
        _state_cache = await StateCache.create(redis_url)
    return _state_cache


async def close_state_cache() -> None:
    """Close the global state cache connection."""
    global _state_cache
    if _state_cache is not None:
        await _state_cache.close()
        _state_cache = None
