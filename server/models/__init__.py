"""Models package for SnapMatch."""

from .events import EventType, GameEvent

__all__ = [
    "EventType",
    "GameEvent",
]
