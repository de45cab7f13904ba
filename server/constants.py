"""
Game constants for SnapMatch.

This module is the single source of truth for the symbol alphabet, the
wild-card sentinel and the built-in category pool. Room limits and rule
defaults come from config.py (see .env.example for the variables).

Deck rules:
    - One card per category, symbols assigned round-robin by position
    - Roughly 10% of items are re-designated wild (independently per item)
    - A card matches another when their symbols are equal or equivalent
"""

from config import config


# =============================================================================
# Symbols and Cards
# =============================================================================

SYMBOLS: tuple[str, ...] = ('◆', '★', '●', '■', '▲', '♥', '✦', '⬟')

WILD_CATEGORY = "WILD"

WILD_CARD_RATIO: float = config.game_defaults.wild_ratio

# Built-in prompt pool used when neither the host nor CATEGORIES supplies one.
DEFAULT_CATEGORIES: tuple[str, ...] = (
    "Movies",
    "Books",
    "Foods",
    "Animals",
    "Countries",
    "Cities",
    "Sports",
    "Musicians",
    "TV Shows",
    "Board Games",
    "Video Games",
    "Fruits",
    "Vegetables",
    "Car Brands",
    "Desserts",
    "Drinks",
    "Famous Scientists",
    "Superheroes",
    "Cartoon Characters",
    "Things in a Kitchen",
    "Things at the Beach",
    "School Subjects",
    "Occupations",
    "Musical Instruments",
    "Flowers",
    "Rivers",
    "Breakfast Foods",
    "Things That Fly",
    "Clothing",
    "Tools",
    "Holidays",
    "Pizza Toppings",
    "Dog Breeds",
    "Candy",
    "Languages",
    "Dances",
    "Card Games",
    "Insects",
    "Cheeses",
    "Apps",
)


# =============================================================================
# Room Constants
# =============================================================================

# Excludes I and O so codes are not confused with 1 and 0.
ROOM_CODE_CHARS = "ABCDEFGHJKLMNPQRSTUVWXYZ"

MAX_PLAYERS = config.MAX_PLAYERS_PER_ROOM
MIN_PLAYERS = config.MIN_PLAYERS
ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
ROOM_TIMEOUT_MINUTES = config.ROOM_TIMEOUT_MINUTES
DEFAULT_RULE_MODE = config.game_defaults.rule_mode


def category_pool() -> list[str]:
    """
    Get the category labels a new deck is generated from.

    Returns:
        CATEGORIES from the environment if set, else the built-in pool.
    """
    if config.game_defaults.categories:
        return list(config.game_defaults.categories)
    return list(DEFAULT_CATEGORIES)
