"""
Deck model for SnapMatch.

A deck is generated once per game from the category pool: one item per
category, symbols assigned round-robin by position, and each item
independently re-designated wild with probability ``wild_ratio``. How a
wild item looks depends on the rule mode:

    PERSISTENT:     a Card with category "WILD" and is_wild=True. It still
                    lands on the drawer's stack.
    SINGLE_ACTIVE:  a WildItem carrying two distinct symbols. It never
                    lands on a stack; it replaces the active wild pair.

Decks are immutable values. Drawing returns the item under the cursor and
a new Deck whose cursor has advanced by one.

Randomness always comes from an injected ``random.Random`` so games can
be replayed from a seed.
"""

import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

from constants import SYMBOLS, WILD_CARD_RATIO, WILD_CATEGORY
from errors import DeckExhausted, InvalidWildPair


class RuleMode(str, Enum):
    """
    Which wild-card rules a game plays with.

    PERSISTENT: every wild card drawn adds a permanent symbol equivalence.
    SINGLE_ACTIVE: a wild item replaces the one active equivalence pair.
    """

    PERSISTENT = "persistent"
    SINGLE_ACTIVE = "single_active"


@dataclass(frozen=True)
class Card:
    """
    A category card.

    Attributes:
        category: The prompt shown on the card ("WILD" for persistent-mode wilds).
        symbol: One of the 8 glyphs in SYMBOLS.
        is_wild: Only ever True in persistent mode.
    """

    category: str
    symbol: str
    is_wild: bool = False

    def __post_init__(self) -> None:
        if self.symbol not in SYMBOLS:
            raise ValueError(f"Unknown symbol: {self.symbol!r}")

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "symbol": self.symbol,
            "is_wild": self.is_wild,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Card":
        return cls(
            category=d["category"],
            symbol=d["symbol"],
            is_wild=d.get("is_wild", False),
        )


@dataclass(frozen=True)
class WildItem:
    """
    A single-active-mode wild: makes symbol1 and symbol2 interchangeable.

    Raises:
        InvalidWildPair: If both symbols are the same.
    """

    symbol1: str
    symbol2: str

    def __post_init__(self) -> None:
        for symbol in (self.symbol1, self.symbol2):
            if symbol not in SYMBOLS:
                raise ValueError(f"Unknown symbol: {symbol!r}")
        if self.symbol1 == self.symbol2:
            raise InvalidWildPair(self.symbol1)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.symbol1, self.symbol2)

    def to_dict(self) -> dict:
        return {"symbol1": self.symbol1, "symbol2": self.symbol2}

    @classmethod
    def from_dict(cls, d: dict) -> "WildItem":
        return cls(symbol1=d["symbol1"], symbol2=d["symbol2"])


DeckItem = Union[Card, WildItem]


def deck_item_from_dict(d: dict) -> DeckItem:
    """Rebuild a Card or WildItem from its dict form."""
    if "symbol1" in d and "symbol2" in d:
        return WildItem.from_dict(d)
    return Card.from_dict(d)


@dataclass(frozen=True)
class Deck:
    """
    An ordered sequence of draw items plus a cursor.

    Invariant: 0 <= index <= len(items). Items before the cursor have been
    drawn; the item at the cursor is the next draw.
    """

    items: tuple[DeckItem, ...]
    index: int = 0

    def __post_init__(self) -> None:
        if not self.items:
            raise ValueError("Deck must contain at least one item")
        if not 0 <= self.index <= len(self.items):
            raise ValueError(f"Deck index {self.index} out of range 0..{len(self.items)}")

    def __len__(self) -> int:
        return len(self.items)

    @property
    def remaining(self) -> int:
        """Number of items left to draw."""
        return len(self.items) - self.index

    @property
    def is_exhausted(self) -> bool:
        return self.index >= len(self.items)

    def peek(self) -> Optional[DeckItem]:
        """Return the next item without drawing it, or None if exhausted."""
        if self.is_exhausted:
            return None
        return self.items[self.index]

    def draw(self) -> tuple[DeckItem, "Deck"]:
        """
        Draw the item under the cursor.

        Returns:
            Tuple of (drawn item, deck with the cursor advanced by one).

        Raises:
            DeckExhausted: If every item has already been drawn.
        """
        if self.is_exhausted:
            raise DeckExhausted()
        return self.items[self.index], Deck(self.items, self.index + 1)

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "index": self.index,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Deck":
        return cls(
            items=tuple(deck_item_from_dict(item) for item in d["items"]),
            index=d.get("index", 0),
        )


def shuffle_items(items: Iterable, rng: random.Random) -> list:
    """
    Return a uniformly shuffled copy of ``items``.

    random.Random.shuffle is a Fisher-Yates shuffle, so every permutation
    is equally likely for a given RNG state.
    """
    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled


def generate_deck(
    categories: Iterable[str],
    mode: RuleMode = RuleMode.PERSISTENT,
    wild_ratio: float = WILD_CARD_RATIO,
    rng: Optional[random.Random] = None,
) -> Deck:
    """
    Build a shuffled deck with one item per category.

    Args:
        categories: Unique, non-empty category labels.
        mode: Rule mode deciding what a wild item looks like.
        wild_ratio: Per-item probability of becoming wild (0 disables wilds).
        rng: Random source. A fresh unseeded one is used if omitted.

    Returns:
        A Deck with its cursor at 0.

    Raises:
        ValueError: If no categories are given.
    """
    rng = rng or random.Random()
    labels = shuffle_items(categories, rng)
    if not labels:
        raise ValueError("At least one category is required to build a deck")

    items: list[DeckItem] = []
    for i, category in enumerate(labels):
        symbol = SYMBOLS[i % len(SYMBOLS)]
        is_wild = rng.random() < wild_ratio

        if not is_wild:
            items.append(Card(category=category, symbol=symbol))
        elif mode == RuleMode.PERSISTENT:
            items.append(Card(category=WILD_CATEGORY, symbol=symbol, is_wild=True))
        else:
            symbol1, symbol2 = rng.sample(SYMBOLS, 2)
            items.append(WildItem(symbol1, symbol2))

    return Deck(tuple(shuffle_items(items, rng)))
