import logging
import math
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Defaults for the SOS proximity search and the user directory lifecycle
DEFAULT_NEARBY_RADIUS = 500  # meters
DEFAULT_USER_MAX_AGE = 24 * 60 * 60  # 24 hours in seconds
DEFAULT_USER_CLEANUP_INTERVAL = 6 * 60 * 60  # 6 hours in seconds
DEFAULT_CRIME_DATA_PATH = os.path.join("data", "crime-data.csv")


def _env_number(name: str, default: float, positive: bool = False) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: '{raw}'. Falling back to {default}.")
        return default
    if not math.isfinite(value) or value < 0 or (positive and value == 0):
        kind = "positive" if positive else "non-negative"
        logger.warning(f"{name} must be a {kind} number, got {value}. Falling back to {default}.")
        return default
    return value


def _env_log_level(name: str, default: str) -> str:
    level = os.getenv(name, default).strip().upper()
    # getLevelName maps known names to their numeric level
    if not isinstance(logging.getLevelName(level), int):
        logger.warning(f"Unknown log level for {name}: '{level}'. Falling back to {default}.")
        return default
    return level


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    """Runtime configuration, normally built from environment variables."""
    nearby_radius: float = DEFAULT_NEARBY_RADIUS
    user_max_age: float = DEFAULT_USER_MAX_AGE
    user_cleanup_interval: float = DEFAULT_USER_CLEANUP_INTERVAL
    crime_data_path: str = DEFAULT_CRIME_DATA_PATH
    seed_demo_users: bool = True
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    sse_keepalive_seconds: float = 15.0
    host: str = "0.0.0.0"
    port: int = 5000

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Read settings from the environment, loading a .env file first if present."""
        load_dotenv(env_file)
        cors = os.getenv("CORS_ORIGINS", "*")
        return cls(
            nearby_radius=_env_number("NEARBY_RADIUS", DEFAULT_NEARBY_RADIUS),
            user_max_age=_env_number("USER_MAX_AGE", DEFAULT_USER_MAX_AGE),
            user_cleanup_interval=_env_number("USER_CLEANUP_INTERVAL", DEFAULT_USER_CLEANUP_INTERVAL),
            crime_data_path=os.getenv("CRIME_DATA_PATH", DEFAULT_CRIME_DATA_PATH),
            seed_demo_users=_env_flag("SEED_DEMO_USERS", True),
            log_level=_env_log_level("LOG_LEVEL", "INFO"),
            cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
            sse_keepalive_seconds=_env_number("SSE_KEEPALIVE_SECONDS", 15.0, positive=True),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(_env_number("PORT", 5000)),
        )
