"""
Event definitions for SnapMatch games.

Every state change the Game aggregate commits is announced as an
immutable GameEvent. Rooms keep a bounded log of them. Clients that
missed broadcasts catch up with a ``get_events`` message carrying the
last sequence number they saw.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    """All possible event types in a SnapMatch game."""

    # Lifecycle events
    GAME_CREATED = "game_created"
    PLAYER_JOINED = "player_joined"
    PLAYER_LEFT = "player_left"
    GAME_STARTED = "game_started"
    GAME_ENDED = "game_ended"

    # Gameplay events
    CARD_DRAWN = "card_drawn"
    WILD_DRAWN = "wild_drawn"
    MATCH_FOUND = "match_found"
    WIN_CLAIMED = "win_claimed"
    WIN_CONFIRMED = "win_confirmed"
    WIN_REJECTED = "win_rejected"
    CASCADING_MATCH = "cascading_match"


@dataclass
class GameEvent:
    """
    A record of something that happened in a game.

    Attributes:
        event_type: The type of event (from EventType enum).
        game_id: UUID of the game this event belongs to.
        sequence_num: Monotonically increasing sequence number within game.
        timestamp: When the event occurred (UTC).
        player_id: ID of player who triggered the event (if applicable).
        data: Event-specific payload data.
    """

    event_type: EventType
    game_id: str
    sequence_num: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    player_id: Optional[str] = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Serialize event for the wire."""
        return {
            "event_type": self.event_type.value,
            "game_id": self.game_id,
            "sequence_num": self.sequence_num,
            "timestamp": self.timestamp.isoformat(),
            "player_id": self.player_id,
            "data": self.data,
        }
