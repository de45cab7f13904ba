"""
Centralized configuration for the SnapMatch server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_defaults.rule_mode)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_float(key: str, default: float = 0.0) -> float:
    """Get float environment variable."""
    try:
        return float(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_list(key: str) -> list[str]:
    """Get a comma-separated environment variable as a list of trimmed items."""
    return [item.strip() for item in get_env(key, "").split(",") if item.strip()]


@dataclass
class GameDefaults:
    """Default game settings."""
    rule_mode: str = "persistent"  # "persistent" or "single_active"
    wild_ratio: float = 0.10
    categories: list[str] = field(default_factory=list)  # empty = built-in pool


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Live state cache (optional)
    REDIS_URL: str = ""

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 8
    MIN_PLAYERS: int = 2
    ROOM_CODE_LENGTH: int = 4
    ROOM_TIMEOUT_MINUTES: int = 24 * 60
    CLEANUP_INTERVAL_SECONDS: int = 600

    # Game defaults
    game_defaults: GameDefaults = field(default_factory=GameDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            REDIS_URL=get_env("REDIS_URL", ""),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 8),
            MIN_PLAYERS=get_env_int("MIN_PLAYERS", 2),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 4),
            ROOM_TIMEOUT_MINUTES=get_env_int("ROOM_TIMEOUT_MINUTES", 24 * 60),
            CLEANUP_INTERVAL_SECONDS=get_env_int("CLEANUP_INTERVAL_SECONDS", 600),
            game_defaults=GameDefaults(
                rule_mode=get_env("DEFAULT_RULE_MODE", "persistent"),
                wild_ratio=get_env_float("DEFAULT_WILD_RATIO", 0.10),
                categories=get_env_list("CATEGORIES"),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
