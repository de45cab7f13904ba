"""Exceptions raised by the SnapMatch engine and game aggregate.

Every operation raises before it replaces any state, so catching one of
these means nothing changed.
"""

from typing import Optional

# Error codes (sent to clients in {"type": "error", "code": ...})
DECK_EXHAUSTED = "DECK_EXHAUSTED"
PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
PLAYERS_NOT_FOUND = "PLAYERS_NOT_FOUND"
INVALID_WILD_PAIR = "INVALID_WILD_PAIR"
INVALID_CLAIM = "INVALID_CLAIM"
INVALID_GAME_STATE = "INVALID_GAME_STATE"


class GameError(Exception):
    """Base exception for game-related errors."""

    code = "GAME_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        if code is not None:
            self.code = code
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class DeckExhausted(GameError):
    """Draw attempted after the last deck item."""

    code = DECK_EXHAUSTED

    def __init__(self, message: str = "No more cards"):
        super().__init__(message)


class PlayerNotFound(GameError):
    code = PLAYER_NOT_FOUND

    def __init__(self, player_id: str):
        self.player_id = player_id
        super().__init__(f"Player {player_id} not found")


class PlayersNotFound(GameError):
    """A resolution referenced a winner or loser missing from the roster."""

    code = PLAYERS_NOT_FOUND

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Players not found: {', '.join(missing)}")


class InvalidWildPair(GameError):
    code = INVALID_WILD_PAIR

    def __init__(self, symbol: str):
        super().__init__(f"Wild pair needs two distinct symbols, got {symbol} twice")


class InvalidClaim(GameError):
    code = INVALID_CLAIM


class InvalidGameState(GameError):
    code = INVALID_GAME_STATE
