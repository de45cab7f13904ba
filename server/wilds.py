"""
Wild-card equivalence state for SnapMatch.

Two cards match when their symbols are equal or when the current wild
state declares the two symbols equivalent. The state comes in two
flavours, one per RuleMode, sharing the same ``matches`` contract so the
match finder never needs to know which rules are in play:

    PersistentEquivalence: an append-only list of symbol pairs. Every wild
        card drawn adds one pair, and every pair stays active for the rest
        of the game. Pairs may repeat.
    ActiveWild: at most one pair. Drawing a wild item replaces it.

States are immutable; ``observe`` returns a new state.
"""

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from constants import SYMBOLS
from deck import Card, DeckItem, RuleMode, WildItem


SymbolPair = tuple[str, str]


def _pair_matches(pair: SymbolPair, a: str, b: str) -> bool:
    return (a, b) == pair or (b, a) == pair


class EquivalenceState(ABC):
    """Symbol-equality predicate plus the rule for updating it on a draw."""

    mode: RuleMode

    @abstractmethod
    def matches(self, symbol_a: str, symbol_b: str) -> bool:
        """Whether two symbols count as the same for matching."""

    @abstractmethod
    def observe(
        self, item: DeckItem, rng: random.Random
    ) -> tuple["EquivalenceState", Optional[Card]]:
        """
        Apply a freshly drawn item.

        Args:
            item: The item just drawn from the deck.
            rng: Random source for any symbol choice the draw requires.

        Returns:
            Tuple of (new state, card to push on the drawer's stack or None).
        """

    @abstractmethod
    def to_dict(self) -> dict:
        """Serialize for client views and the state cache."""


@dataclass(frozen=True)
class PersistentEquivalence(EquivalenceState):
    """Every wild card drawn so far contributes a pair that never expires."""

    pairs: tuple[SymbolPair, ...] = ()

    mode = RuleMode.PERSISTENT

    def matches(self, symbol_a: str, symbol_b: str) -> bool:
        if symbol_a == symbol_b:
            return True
        return any(_pair_matches(pair, symbol_a, symbol_b) for pair in self.pairs)

    def observe(
        self, item: DeckItem, rng: random.Random
    ) -> tuple["PersistentEquivalence", Optional[Card]]:
        if isinstance(item, WildItem):
            raise ValueError("Wild items are not part of persistent-mode decks")
        if not item.is_wild:
            return self, item

        # No memory of earlier choices: the same pair can be added twice.
        others = [s for s in SYMBOLS if s != item.symbol]
        chosen = rng.choice(others)
        return PersistentEquivalence(self.pairs + ((item.symbol, chosen),)), item

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "pairs": [list(pair) for pair in self.pairs],
        }


@dataclass(frozen=True)
class ActiveWild(EquivalenceState):
    """Only the most recently drawn wild item is in effect."""

    pair: Optional[SymbolPair] = None

    mode = RuleMode.SINGLE_ACTIVE

    def matches(self, symbol_a: str, symbol_b: str) -> bool:
        if symbol_a == symbol_b:
            return True
        if self.pair is None:
            return False
        return _pair_matches(self.pair, symbol_a, symbol_b)

    def observe(
        self, item: DeckItem, rng: random.Random
    ) -> tuple["ActiveWild", Optional[Card]]:
        if isinstance(item, WildItem):
            return ActiveWild(item.pair), None
        return self, item

    def to_dict(self) -> dict:
        return {
            "mode": self.mode.value,
            "active_wild": list(self.pair) if self.pair else None,
        }


def new_equivalence_state(mode: RuleMode) -> EquivalenceState:
    """Return the empty starting state for a rule mode."""
    if RuleMode(mode) == RuleMode.SINGLE_ACTIVE:
        return ActiveWild()
    return PersistentEquivalence()


def equivalence_from_dict(d: dict) -> EquivalenceState:
    """Rebuild an equivalence state from ``EquivalenceState.to_dict`` output."""
    mode = RuleMode(d.get("mode", RuleMode.PERSISTENT.value))
    if mode == RuleMode.SINGLE_ACTIVE:
        pair = d.get("active_wild")
        if pair is None:
            return ActiveWild()
        # Reuse WildItem validation so a stored self-pair cannot come back.
        return ActiveWild(WildItem(pair[0], pair[1]).pair)
    return PersistentEquivalence(tuple((a, b) for a, b in d.get("pairs", [])))
