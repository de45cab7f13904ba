"""
Test suite for wild-card equivalence state.

Covers:
- Symmetric matching in both rule modes
- Persistent mode: pairs accumulate and never expire, repeats allowed
- Single-active mode: a new wild item replaces the previous pair
- Serialization back from dict form

Run with: pytest test_wilds.py -v
"""

import random

import pytest

from constants import SYMBOLS, WILD_CATEGORY
from deck import Card, RuleMode, WildItem
from errors import InvalidWildPair
from wilds import (
    ActiveWild,
    PersistentEquivalence,
    equivalence_from_dict,
    new_equivalence_state,
)


DIAMOND, STAR, CIRCLE, SQUARE = SYMBOLS[:4]


class FirstChoice:
    """Random stand-in that always picks the first option."""

    def choice(self, seq):
        return seq[0]


def wild_card(symbol):
    return Card(WILD_CATEGORY, symbol, is_wild=True)


class TestPersistentEquivalence:

    def test_equal_symbols_always_match(self):
        eq = PersistentEquivalence()
        for symbol in SYMBOLS:
            assert eq.matches(symbol, symbol)

    def test_distinct_symbols_do_not_match_without_pairs(self):
        assert not PersistentEquivalence().matches(DIAMOND, STAR)

    def test_matching_is_symmetric(self):
        eq = PersistentEquivalence(((DIAMOND, STAR), (CIRCLE, SQUARE)))
        for a in SYMBOLS:
            for b in SYMBOLS:
                assert eq.matches(a, b) == eq.matches(b, a)
        assert eq.matches(STAR, DIAMOND)
        assert eq.matches(SQUARE, CIRCLE)
        assert not eq.matches(DIAMOND, CIRCLE)

    def test_regular_card_passes_through(self):
        eq = PersistentEquivalence()
        card = Card("Movies", DIAMOND)

        new_eq, visible = eq.observe(card, random.Random(0))

        assert new_eq is eq
        assert visible is card

    def test_wild_card_adds_pair_with_other_symbol(self):
        card = wild_card(STAR)

        new_eq, visible = PersistentEquivalence().observe(card, random.Random(0))

        assert visible is card
        assert len(new_eq.pairs) == 1
        first, second = new_eq.pairs[0]
        assert first == STAR
        assert second != STAR
        assert new_eq.matches(STAR, second)

    def test_pairs_never_expire(self):
        eq = PersistentEquivalence()
        rng = random.Random(11)
        eq, _ = eq.observe(wild_card(DIAMOND), rng)
        first_pair = eq.pairs[0]

        for symbol in SYMBOLS[1:]:
            eq, _ = eq.observe(wild_card(symbol), rng)
            assert eq.pairs[0] == first_pair
            assert eq.matches(*first_pair)
        assert len(eq.pairs) == len(SYMBOLS)

    def test_repeated_pair_is_kept(self):
        eq = PersistentEquivalence()
        eq, _ = eq.observe(wild_card(STAR), FirstChoice())
        eq, _ = eq.observe(wild_card(STAR), FirstChoice())

        assert eq.pairs == ((STAR, DIAMOND), (STAR, DIAMOND))

    def test_wild_item_not_accepted(self):
        with pytest.raises(ValueError):
            PersistentEquivalence().observe(WildItem(DIAMOND, STAR), random.Random(0))


class TestActiveWild:

    def test_no_pair_only_equal_symbols_match(self):
        eq = ActiveWild()
        assert eq.matches(DIAMOND, DIAMOND)
        assert not eq.matches(DIAMOND, STAR)

    def test_wild_item_sets_pair_and_pushes_nothing(self):
        new_eq, visible = ActiveWild().observe(WildItem(DIAMOND, STAR), random.Random(0))

        assert visible is None
        assert new_eq.pair == (DIAMOND, STAR)
        assert new_eq.matches(STAR, DIAMOND)

    def test_new_wild_replaces_previous(self):
        eq, _ = ActiveWild().observe(WildItem(DIAMOND, STAR), random.Random(0))
        eq, _ = eq.observe(WildItem(CIRCLE, SQUARE), random.Random(0))

        assert eq.pair == (CIRCLE, SQUARE)
        assert not eq.matches(DIAMOND, STAR)
        assert eq.matches(SQUARE, CIRCLE)

    def test_regular_card_keeps_pair(self):
        eq = ActiveWild((DIAMOND, STAR))
        card = Card("Books", CIRCLE)

        new_eq, visible = eq.observe(card, random.Random(0))

        assert new_eq is eq
        assert visible is card


class TestEquivalenceSerialization:

    def test_new_state_per_mode(self):
        assert new_equivalence_state(RuleMode.PERSISTENT) == PersistentEquivalence()
        assert new_equivalence_state(RuleMode.SINGLE_ACTIVE) == ActiveWild()
        assert new_equivalence_state("single_active") == ActiveWild()

    def test_from_dict(self):
        persistent = PersistentEquivalence(((DIAMOND, STAR), (DIAMOND, STAR)))
        active = ActiveWild((CIRCLE, SQUARE))

        assert equivalence_from_dict(persistent.to_dict()) == persistent
        assert equivalence_from_dict(active.to_dict()) == active
        assert equivalence_from_dict(ActiveWild().to_dict()) == ActiveWild()

    def test_stored_self_pair_rejected(self):
        with pytest.raises(InvalidWildPair):
            equivalence_from_dict({"mode": "single_active", "active_wild": [STAR, STAR]})
