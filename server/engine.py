"""
Match-detection and turn-resolution engine for SnapMatch.

Everything here is a pure function over immutable snapshots: players are
frozen dataclasses, stacks are tuples, and each operation returns the new
values instead of mutating its inputs. If an operation raises, the caller's
state is untouched. The Game aggregate (game.py) commits the returned
values; rooms serialize those commits with a per-game lock.

Stack layout:
    card_stack[0] is the top (visible) card. Drawing prepends; losing a
    match removes index 0 and reveals whatever was underneath.

Match scan order:
    Pairs are scanned as (i, j) with i < j over the roster order, skipping
    players with empty stacks. The first matching pair is the one reported.
    With three or more players several pairs can match at once, so this
    order decides which one surfaces.
"""

import random
from dataclasses import dataclass, replace
from typing import Iterable, Optional, Sequence

from deck import Card, Deck, DeckItem
from errors import InvalidClaim, PlayerNotFound, PlayersNotFound
from wilds import EquivalenceState


@dataclass(frozen=True)
class Player:
    """
    A player's in-game state.

    Attributes:
        id: Unique within a game.
        name: Display name.
        score: Confirmed wins; only ever increases.
        card_stack: Drawn cards, top first.
        is_host: Whether this player runs the lobby.
    """

    id: str
    name: str
    score: int = 0
    card_stack: tuple[Card, ...] = ()
    is_host: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "score": self.score,
            "card_stack": [card.to_dict() for card in self.card_stack],
            "is_host": self.is_host,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Player":
        return cls(
            id=d["id"],
            name=d["name"],
            score=d.get("score", 0),
            card_stack=tuple(Card.from_dict(c) for c in d.get("card_stack", [])),
            is_host=d.get("is_host", False),
        )


@dataclass(frozen=True)
class Match:
    """Two players whose top cards match, and the symbol of player1's card."""

    player1_id: str
    player1_name: str
    player2_id: str
    player2_name: str
    symbol: str

    def involves(self, player_id: str) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    def opponent_of(self, player_id: str) -> tuple[str, str]:
        """
        Get the other participant's (id, name).

        Raises:
            ValueError: If ``player_id`` is not part of this match.
        """
        if player_id == self.player1_id:
            return self.player2_id, self.player2_name
        if player_id == self.player2_id:
            return self.player1_id, self.player1_name
        raise ValueError(f"Player {player_id} is not part of this match")

    def to_dict(self) -> dict:
        return {
            "player1_id": self.player1_id,
            "player1_name": self.player1_name,
            "player2_id": self.player2_id,
            "player2_name": self.player2_name,
            "symbol": self.symbol,
        }


@dataclass(frozen=True)
class DrawOutcome:
    """Everything a draw produced. ``players`` is the full updated roster."""

    player_id: str
    item: DeckItem
    deck: Deck
    equivalence: EquivalenceState
    players: tuple[Player, ...]
    visible_card: Optional[Card]
    match: Optional[Match]


@dataclass(frozen=True)
class Resolution:
    """Result of confirming a win. ``players`` is the full updated roster."""

    winner_id: str
    loser_id: str
    players: tuple[Player, ...]
    new_score: int
    revealed_card: Optional[Card]
    cascading_match: Optional[Match]


# =============================================================================
# Card stacks
# =============================================================================

def top_card(player: Player) -> Optional[Card]:
    """Return the visible card, or None for an empty stack."""
    return player.card_stack[0] if player.card_stack else None


def push_card(player: Player, card: Card) -> Player:
    """Return ``player`` with ``card`` placed on top of their stack."""
    return replace(player, card_stack=(card,) + player.card_stack)


def pop_top(player: Player) -> tuple[Player, Optional[Card]]:
    """
    Remove the top card.

    Popping an empty stack is a no-op that returns (player, None).
    """
    if not player.card_stack:
        return player, None
    return replace(player, card_stack=player.card_stack[1:]), player.card_stack[0]


def get_player(players: Iterable[Player], player_id: str) -> Player:
    """
    Find a player by ID.

    Raises:
        PlayerNotFound: If no player has that ID.
    """
    for player in players:
        if player.id == player_id:
            return player
    raise PlayerNotFound(player_id)


def _replace_player(players: Sequence[Player], updated: Player) -> tuple[Player, ...]:
    return tuple(updated if p.id == updated.id else p for p in players)


# =============================================================================
# Match finder
# =============================================================================

def _compare(a: Player, b: Player, equivalence: EquivalenceState) -> Optional[Match]:
    card_a = top_card(a)
    card_b = top_card(b)
    if card_a is None or card_b is None:
        return None
    if not equivalence.matches(card_a.symbol, card_b.symbol):
        return None
    return Match(a.id, a.name, b.id, b.name, card_a.symbol)


def find_match(
    players: Sequence[Player],
    equivalence: EquivalenceState,
    exclude: Optional[str] = None,
) -> Optional[Match]:
    """
    Find the first matching pair of visible cards in the roster.

    Args:
        players: Roster in scan order.
        equivalence: Current wild state.
        exclude: Optional player ID to leave out of the scan.

    Returns:
        The first Match in (i, j), i < j order, or None.
    """
    candidates = [p for p in players if p.card_stack and p.id != exclude]
    for i, first in enumerate(candidates):
        for second in candidates[i + 1:]:
            match = _compare(first, second, equivalence)
            if match:
                return match
    return None


def find_match_against(
    player: Player,
    others: Iterable[Player],
    equivalence: EquivalenceState,
) -> Optional[Match]:
    """
    Check one player's visible card against each of ``others`` in order.

    Only pairs that include ``player`` are considered, so unrelated pairs
    are never re-checked. The returned Match always has ``player`` as
    player1.
    """
    for other in others:
        if other.id == player.id:
            continue
        match = _compare(player, other, equivalence)
        if match:
            return match
    return None


# =============================================================================
# Draw and resolution
# =============================================================================

def draw(
    deck: Deck,
    equivalence: EquivalenceState,
    players: Sequence[Player],
    player_id: str,
    rng: random.Random,
) -> DrawOutcome:
    """
    Draw the next deck item for ``player_id``.

    The item first updates the wild state. If it produces a stack card, the
    card goes on top of the drawer's stack and the drawer is checked
    against everyone else. A single-active wild item pushes nothing, but a
    new active pair can make two existing top cards match, so in that case
    the whole roster is scanned instead.

    Raises:
        PlayerNotFound: If the drawer is not in the roster.
        DeckExhausted: If the deck has no items left.
    """
    drawer = get_player(players, player_id)
    item, next_deck = deck.draw()
    next_equivalence, visible_card = equivalence.observe(item, rng)

    roster = tuple(players)
    if visible_card is not None:
        drawer = push_card(drawer, visible_card)
        roster = _replace_player(roster, drawer)
        others = [p for p in roster if p.id != player_id]
        match = find_match_against(drawer, others, next_equivalence)
    elif next_equivalence != equivalence:
        match = find_match(roster, next_equivalence)
    else:
        match = None

    return DrawOutcome(
        player_id=player_id,
        item=item,
        deck=next_deck,
        equivalence=next_equivalence,
        players=roster,
        visible_card=visible_card,
        match=match,
    )


def resolve(
    players: Sequence[Player],
    winner_id: str,
    loser_id: str,
    equivalence: EquivalenceState,
) -> Resolution:
    """
    Apply a confirmed win and look for a cascading match.

    Steps:
        1. Winner's score goes up by one.
        2. Loser's top card is removed, revealing the next one (if any).
        3. The revealed card is checked against every other player's top
           card, winner included, in roster order.

    Raises:
        PlayersNotFound: If either ID is missing from the roster.
        InvalidClaim: If winner and loser are the same player.
    """
    ids = {p.id for p in players}
    missing = [pid for pid in dict.fromkeys((winner_id, loser_id)) if pid not in ids]
    if missing:
        raise PlayersNotFound(missing)
    if winner_id == loser_id:
        raise InvalidClaim("A player cannot win against themselves")

    winner = get_player(players, winner_id)
    winner = replace(winner, score=winner.score + 1)
    loser, _ = pop_top(get_player(players, loser_id))

    roster = _replace_player(_replace_player(players, winner), loser)
    revealed = top_card(loser)

    cascading = None
    if revealed is not None:
        others = [p for p in roster if p.id != loser_id]
        cascading = find_match_against(loser, others, equivalence)

    return Resolution(
        winner_id=winner_id,
        loser_id=loser_id,
        players=roster,
        new_score=winner.score,
        revealed_card=revealed,
        cascading_match=cascading,
    )
