"""
Game state and flow for SnapMatch.

SnapMatch is a real-time party word game. Every player keeps a face-up
stack of category cards, each tagged with one of 8 symbols. Players take
turns drawing from a shared deck; the drawn card goes on top of their
stack. When two players' top cards share a symbol (or symbols made
equivalent by a wild), they race to name something from the other's
category. The first to do so claims the win, the opponent confirms or
rejects, and a confirmed win scores a point and costs the loser their top
card, which can reveal a fresh match straight away.

Game flow:
    WAITING  -> players join, first one is host
    PLAYING  -> draw / claim / respond until the deck runs out or the host ends
    FINISHED -> final standings; no way back

Claim flow for one match:
    NoMatch -> Matched -> Claimed -> Resolved (win applied)
                                  -> Rejected (nothing changes)

The rules themselves live in deck.py, wilds.py and engine.py as pure
functions. Game owns the current snapshot, calls the engine, and only
assigns the results once the engine call has succeeded, so every
operation is all-or-nothing. Callers serialize operations per game
(see Room.game_lock).
"""

import random
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

import engine
from constants import (
    DEFAULT_RULE_MODE,
    MAX_PLAYERS,
    MIN_PLAYERS,
    WILD_CARD_RATIO,
    category_pool,
)
from deck import Deck, RuleMode, WildItem, generate_deck
from engine import DrawOutcome, Match, Player, Resolution
from errors import GameError, InvalidClaim, InvalidGameState
from models.events import EventType, GameEvent
from wilds import EquivalenceState, equivalence_from_dict, new_equivalence_state


class GameStatus(str, Enum):
    """Lifecycle of a game. Transitions only move forward."""

    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class ClaimState(str, Enum):
    CLAIMED = "claimed"
    RESOLVED = "resolved"
    REJECTED = "rejected"


@dataclass
class MatchClaim:
    """
    A player's proposal that they won the match against ``opponent_id``.

    Only the opponent can resolve or reject it. Claims never expire; a new
    claim by the same claimer replaces the old one, and claims go stale
    (and are dropped) when either player's top card changes.
    """

    claimer_id: str
    opponent_id: str
    symbol: str
    state: ClaimState = ClaimState.CLAIMED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def involves(self, player_id: str) -> bool:
        return player_id in (self.claimer_id, self.opponent_id)

    def to_dict(self) -> dict:
        return {
            "claimer_id": self.claimer_id,
            "opponent_id": self.opponent_id,
            "symbol": self.symbol,
            "state": self.state.value,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, d: dict) -> "MatchClaim":
        created_at = d.get("created_at")
        return cls(
            claimer_id=d["claimer_id"],
            opponent_id=d["opponent_id"],
            symbol=d["symbol"],
            state=ClaimState(d.get("state", ClaimState.CLAIMED.value)),
            created_at=(
                datetime.fromisoformat(created_at) if created_at
                else datetime.now(timezone.utc)
            ),
        )


def _default_mode() -> RuleMode:
    return RuleMode(DEFAULT_RULE_MODE)


@dataclass
class Game:
    """
    One SnapMatch game: roster, deck, wild state and pending claims.

    Attributes:
        code: Room code the game is played under.
        mode: Wild-card rules (persistent equivalences or single active wild).
        players: Roster in join order; this is also the match scan order.
        status: Current lifecycle status.
        host_id: ID of the host player.
        deck: The shuffled deck, created on start.
        equivalence: Current wild state for ``mode``.
        claims: Pending claims keyed by claimer ID.
        seed: Seed for the game's random source (deck shuffle, wild symbols).
        max_players: Roster limit.
        game_id: Unique identifier for event records.
    """

    code: str = ""
    mode: RuleMode = field(default_factory=_default_mode)
    players: list[Player] = field(default_factory=list)
    status: GameStatus = GameStatus.WAITING
    host_id: Optional[str] = None
    deck: Optional[Deck] = None
    equivalence: Optional[EquivalenceState] = None
    claims: dict[str, MatchClaim] = field(default_factory=dict)
    seed: int = field(default_factory=lambda: random.randint(0, 2**31 - 1))
    max_players: int = MAX_PLAYERS
    game_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    _rng: random.Random = field(default=None, repr=False, compare=False)
    _event_emitter: Optional[Callable[[GameEvent], None]] = field(
        default=None, repr=False, compare=False
    )
    _sequence_num: int = field(default=0, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.mode = RuleMode(self.mode)
        if self.equivalence is None:
            self.equivalence = new_equivalence_state(self.mode)
        if self._rng is None:
            self._rng = random.Random(self.seed)

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def set_event_emitter(self, emitter: Callable[[GameEvent], None]) -> None:
        """
        Set callback for event emission.

        The emitter is called with each GameEvent after the state change it
        describes has been committed.
        """
        self._event_emitter = emitter

    def emit_game_created(self) -> None:
        """Announce the game; call once after the emitter is set."""
        self._emit(EventType.GAME_CREATED, code=self.code, mode=self.mode.value)

    def _emit(
        self,
        event_type: EventType,
        player_id: Optional[str] = None,
        **data: Any,
    ) -> None:
        if self._event_emitter is None:
            return

        self._sequence_num += 1
        event = GameEvent(
            event_type=event_type,
            game_id=self.game_id,
            sequence_num=self._sequence_num,
            player_id=player_id,
            data=data,
        )
        self._event_emitter(event)

    # -------------------------------------------------------------------------
    # Player Management
    # -------------------------------------------------------------------------

    def get_player(self, player_id: str) -> Optional[Player]:
        """Find a player by ID, or None if not found."""
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def add_player(self, player_id: str, name: str) -> Player:
        """
        Add a player to a game that has not started yet.

        The first player to join becomes the host.

        Raises:
            InvalidGameState: If the game already started or is full.
            GameError: If the name is blank or taken, or the ID is in use.
        """
        if self.status != GameStatus.WAITING:
            raise InvalidGameState("Game has already started")
        if len(self.players) >= self.max_players:
            raise InvalidGameState("Game is full")

        name = name.strip() if isinstance(name, str) else ""
        if not name:
            raise GameError("Player name is required", code="INVALID_NAME")
        if any(p.name.lower() == name.lower() for p in self.players):
            raise GameError("Player name already taken", code="NAME_TAKEN")
        if self.get_player(player_id):
            raise GameError(f"Player {player_id} already joined", code="ALREADY_JOINED")

        is_host = not self.players
        player = Player(id=player_id, name=name, is_host=is_host)
        self.players.append(player)
        if is_host:
            self.host_id = player_id

        self._emit(EventType.PLAYER_JOINED, player_id=player_id, player_name=name, is_host=is_host)
        return player

    def remove_player(self, player_id: str, reason: str = "left") -> Optional[Player]:
        """
        Remove a player by ID.

        Claims involving the player are dropped. If the host leaves, the
        next player in join order becomes host.

        Returns:
            The removed Player, or None if not found.
        """
        removed = self.get_player(player_id)
        if removed is None:
            return None

        self.players = [p for p in self.players if p.id != player_id]
        self._drop_claims({player_id})

        if removed.is_host and self.players:
            new_host = replace(self.players[0], is_host=True)
            self.players[0] = new_host
            self.host_id = new_host.id
        elif not self.players:
            self.host_id = None

        self._emit(EventType.PLAYER_LEFT, player_id=player_id, reason=reason, host_id=self.host_id)
        return removed

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(
        self,
        categories: Optional[list[str]] = None,
        wild_ratio: Optional[float] = None,
        mode: Optional[RuleMode] = None,
    ) -> None:
        """
        Build the deck and begin play.

        Args:
            categories: List of category labels for the deck. None uses the pool.
            wild_ratio: Per-item wild probability (defaults to config).
            mode: Switch rule mode before dealing (keeps the current one if None).

        Raises:
            InvalidGameState: If not waiting, too few players, or no usable labels.
            ValueError: If ``mode`` is unknown or ``categories`` is not a
                list of strings.
        """
        if self.status != GameStatus.WAITING:
            raise InvalidGameState("Game has already started")
        if len(self.players) < MIN_PLAYERS:
            raise InvalidGameState(f"Need at least {MIN_PLAYERS} players")
        mode = RuleMode(mode) if mode is not None else self.mode

        if categories is None:
            categories = category_pool()
        elif not isinstance(categories, (list, tuple)) or not all(isinstance(c, str) for c in categories):
            raise ValueError("categories must be a list of strings")

        # Blank and repeated labels are dropped; order is kept for seeded replays.
        labels = list(dict.fromkeys(c.strip() for c in categories if c.strip()))
        if not labels:
            raise InvalidGameState("No categories to build a deck from")
        ratio = WILD_CARD_RATIO if wild_ratio is None else max(0.0, min(1.0, float(wild_ratio)))

        self.deck = generate_deck(labels, mode, ratio, self._rng)
        self.mode = mode
        self.equivalence = new_equivalence_state(mode)
        self.status = GameStatus.PLAYING

        self._emit(
            EventType.GAME_STARTED,
            player_id=self.host_id,
            mode=self.mode.value,
            deck_size=len(self.deck),
            player_order=[p.id for p in self.players],
        )

    def finish(self) -> None:
        """
        End the game.

        Raises:
            InvalidGameState: If the game is already finished.
        """
        if self.status == GameStatus.FINISHED:
            raise InvalidGameState("Game is already finished")
        self.status = GameStatus.FINISHED
        self.claims.clear()
        self._emit(
            EventType.GAME_ENDED,
            player_id=self.host_id,
            standings=[{"id": p.id, "name": p.name, "score": p.score} for p in self.standings()],
        )

    def _require_playing(self) -> None:
        if self.status != GameStatus.PLAYING:
            raise InvalidGameState("Game not in progress")

    # -------------------------------------------------------------------------
    # Gameplay
    # -------------------------------------------------------------------------

    def draw_card(self, player_id: str) -> DrawOutcome:
        """
        Draw the next deck item for a player.

        Returns:
            The engine's DrawOutcome (already committed to this game).

        Raises:
            InvalidGameState: If the game is not in progress.
            PlayerNotFound: If the player is not in the game.
            DeckExhausted: If there are no cards left.
        """
        self._require_playing()
        outcome = engine.draw(self.deck, self.equivalence, self.players, player_id, self._rng)

        equivalence_changed = outcome.equivalence != self.equivalence
        self.deck = outcome.deck
        self.equivalence = outcome.equivalence
        self.players = list(outcome.players)
        self._drop_claims({player_id} if outcome.visible_card else set())
        if equivalence_changed:
            self._drop_unmatched_claims()

        if outcome.visible_card is not None:
            self._emit(
                EventType.CARD_DRAWN,
                player_id=player_id,
                card=outcome.visible_card.to_dict(),
                deck_remaining=self.deck.remaining,
            )
        if isinstance(outcome.item, WildItem) or (outcome.visible_card and outcome.visible_card.is_wild):
            self._emit(EventType.WILD_DRAWN, player_id=player_id, equivalence=self.equivalence.to_dict())
        if outcome.match:
            self._emit(EventType.MATCH_FOUND, player_id=player_id, **outcome.match.to_dict())

        return outcome

    def claim_win(self, claimer_id: str, opponent_id: str) -> MatchClaim:
        """
        Propose that ``claimer_id`` won the current match against ``opponent_id``.

        The two players' top cards must match right now. A newer claim by
        the same claimer replaces any older one.

        Raises:
            InvalidGameState: If the game is not in progress.
            PlayerNotFound: If either player is not in the game.
            InvalidClaim: If the players are the same or do not match.
        """
        self._require_playing()
        if claimer_id == opponent_id:
            raise InvalidClaim("Cannot claim a win against yourself")

        claimer = engine.get_player(self.players, claimer_id)
        opponent = engine.get_player(self.players, opponent_id)
        match = engine.find_match_against(claimer, [opponent], self.equivalence)
        if match is None:
            raise InvalidClaim(f"{claimer.name} and {opponent.name} do not have a match")

        claim = MatchClaim(claimer_id=claimer_id, opponent_id=opponent_id, symbol=match.symbol)
        self.claims[claimer_id] = claim

        self._emit(EventType.WIN_CLAIMED, player_id=claimer_id, opponent_id=opponent_id, symbol=match.symbol)
        return claim

    def respond_to_claim(
        self, responder_id: str, claimer_id: str, accept: bool
    ) -> Optional[Resolution]:
        """
        Confirm or reject a pending claim.

        Only the player named as the claim's opponent may respond.

        Returns:
            The Resolution if accepted, None if rejected.

        Raises:
            InvalidGameState: If the game is not in progress.
            InvalidClaim: If there is no such claim or the responder is not
                its opponent.
        """
        self._require_playing()
        claim = self.claims.get(claimer_id)
        if claim is None:
            raise InvalidClaim(f"No pending claim from {claimer_id}")
        if responder_id != claim.opponent_id:
            raise InvalidClaim("Only the claimed opponent can respond to this claim")

        if not accept:
            del self.claims[claimer_id]
            claim.state = ClaimState.REJECTED
            self._emit(EventType.WIN_REJECTED, player_id=responder_id, claimer_id=claimer_id)
            return None

        resolution = self.resolve_win(claimer_id, responder_id)
        claim.state = ClaimState.RESOLVED
        return resolution

    def resolve_win(self, winner_id: str, loser_id: str) -> Resolution:
        """
        Apply a confirmed win: score the winner, pop the loser's top card,
        and report any cascading match from the revealed card.

        Raises:
            InvalidGameState: If the game is not in progress.
            PlayersNotFound: If either player is not in the game.
        """
        self._require_playing()
        resolution = engine.resolve(self.players, winner_id, loser_id, self.equivalence)

        self.players = list(resolution.players)
        self._drop_claims({loser_id})

        self._emit(
            EventType.WIN_CONFIRMED,
            player_id=winner_id,
            loser_id=loser_id,
            new_score=resolution.new_score,
            revealed_card=resolution.revealed_card.to_dict() if resolution.revealed_card else None,
        )
        if resolution.cascading_match:
            self._emit(EventType.CASCADING_MATCH, player_id=loser_id, **resolution.cascading_match.to_dict())

        return resolution

    def current_match(self) -> Optional[Match]:
        """First matching pair on the table, in roster scan order."""
        return engine.find_match(self.players, self.equivalence)

    def standings(self) -> list[Player]:
        """Players ordered by score, highest first (join order breaks ties)."""
        return sorted(self.players, key=lambda p: -p.score)

    def _drop_claims(self, player_ids: set[str]) -> None:
        for claimer_id, claim in list(self.claims.items()):
            if any(claim.involves(pid) for pid in player_ids):
                del self.claims[claimer_id]

    def _drop_unmatched_claims(self) -> None:
        # An active-wild swap can take away the equivalence a claim relied on.
        for claimer_id, claim in list(self.claims.items()):
            claimer = self.get_player(claim.claimer_id)
            opponent = self.get_player(claim.opponent_id)
            if not claimer or not opponent or not engine.find_match_against(
                claimer, [opponent], self.equivalence
            ):
                del self.claims[claimer_id]

    # -------------------------------------------------------------------------
    # State Views
    # -------------------------------------------------------------------------

    def get_state(self, for_player_id: Optional[str] = None) -> dict:
        """
        Get the game state as seen by one player.

        Everyone sees each player's top card, stack size and score. The
        requesting player also gets their full stack.

        Args:
            for_player_id: The player who will receive this state, or None
                for a spectator view.
        """
        players_data = []
        for player in self.players:
            top = engine.top_card(player)
            entry = {
                "id": player.id,
                "name": player.name,
                "score": player.score,
                "is_host": player.is_host,
                "top_card": top.to_dict() if top else None,
                "stack_size": len(player.card_stack),
            }
            if player.id == for_player_id:
                entry["card_stack"] = [c.to_dict() for c in player.card_stack]
            players_data.append(entry)

        match = self.current_match() if self.status == GameStatus.PLAYING else None

        return {
            "code": self.code,
            "status": self.status.value,
            "mode": self.mode.value,
            "host_id": self.host_id,
            "players": players_data,
            "deck_size": len(self.deck) if self.deck else 0,
            "deck_remaining": self.deck.remaining if self.deck else 0,
            "equivalence": self.equivalence.to_dict(),
            "claims": [c.to_dict() for c in self.claims.values()],
            "match": match.to_dict() if match else None,
        }

    def to_dict(self) -> dict:
        """Full snapshot for the state cache (includes every stack and the deck)."""
        return {
            "game_id": self.game_id,
            "code": self.code,
            "mode": self.mode.value,
            "status": self.status.value,
            "host_id": self.host_id,
            "seed": self.seed,
            "max_players": self.max_players,
            "players": [p.to_dict() for p in self.players],
            "deck": self.deck.to_dict() if self.deck else None,
            "equivalence": self.equivalence.to_dict(),
            "claims": [c.to_dict() for c in self.claims.values()],
            "sequence_num": self._sequence_num,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Game":
        """
        Rebuild a game from ``to_dict`` output.

        The random source is reseeded from the seed and deck position, so a
        restored game keeps drawing deterministically.
        """
        deck = Deck.from_dict(d["deck"]) if d.get("deck") else None
        game = cls(
            code=d.get("code", ""),
            mode=RuleMode(d["mode"]),
            players=[Player.from_dict(p) for p in d.get("players", [])],
            status=GameStatus(d["status"]),
            host_id=d.get("host_id"),
            deck=deck,
            equivalence=equivalence_from_dict(d["equivalence"]),
            seed=d["seed"],
            max_players=d.get("max_players", MAX_PLAYERS),
            game_id=d["game_id"],
            _rng=random.Random(f"{d['seed']}:{deck.index if deck else 0}"),
            _sequence_num=d.get("sequence_num", 0),
        )
        for claim_data in d.get("claims", []):
            claim = MatchClaim.from_dict(claim_data)
            game.claims[claim.claimer_id] = claim
        return game
