"""
Centralized configuration for the gesture UNO server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.NUM_SEATS)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

# Load .env file if it exists
try:
    from dotenv import load_dotenv
    env_path = Path(__file__).parent.parent / ".env"
    if env_path.exists():
        load_dotenv(env_path)
except ImportError:
    pass  # python-dotenv not installed, use env vars only


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


def get_env_list(key: str, default: str = "") -> list[str]:
    """Get comma-separated environment variable as a list."""
    raw = os.environ.get(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    SENTRY_DSN: str = ""
    CORS_ORIGINS: list[str] = field(default_factory=lambda: ["http://localhost:5173"])

    # Table settings
    NUM_SEATS: int = 2
    HAND_SIZE: int = 7
    TURN_POLL_MS: int = 250
    READY_POLL_MS: int = 100
    ROUND_CLOSE_TIMEOUT_S: int = 60
    TURN_DELAY_MS: int = 2000
    DRAW_POLICY: str = "when_stuck"  # "when_stuck", "always", or "empty_hand"

    # Lets player sockets push actions when no classifier is running
    ALLOW_CLIENT_ACTIONS: bool = False

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            SENTRY_DSN=get_env("SENTRY_DSN", ""),
            CORS_ORIGINS=get_env_list("CORS_ORIGINS", "http://localhost:5173"),
            NUM_SEATS=max(2, get_env_int("NUM_SEATS", 2)),
            HAND_SIZE=max(1, get_env_int("HAND_SIZE", 7)),
            TURN_POLL_MS=get_env_int("TURN_POLL_MS", 250),
            READY_POLL_MS=get_env_int("READY_POLL_MS", 100),
            ROUND_CLOSE_TIMEOUT_S=get_env_int("ROUND_CLOSE_TIMEOUT_S", 60),
            TURN_DELAY_MS=get_env_int("TURN_DELAY_MS", 2000),
            DRAW_POLICY=get_env("DRAW_POLICY", "when_stuck"),
            ALLOW_CLIENT_ACTIONS=get_env_bool("ALLOW_CLIENT_ACTIONS", False),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
