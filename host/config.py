"""Host configuration from environment variables, and logging setup."""

import logging
import os
import random

ENV_LOG_LEVEL = "SALEM_LOG_LEVEL"
ENV_SESSION_DIR = "SALEM_SESSION_DIR"
ENV_SESSION_EXPIRY_SECONDS = "SALEM_SESSION_EXPIRY_SECONDS"
ENV_RANDOM_SEED = "SALEM_RANDOM_SEED"
ENV_CORS_ORIGINS = "SALEM_CORS_ORIGINS"

DEFAULT_SESSION_EXPIRY_SECONDS = 30 * 60

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_log_level() -> int:
    """Level name from SALEM_LOG_LEVEL (default INFO); unknown names fall back to INFO."""
    name = os.environ.get(ENV_LOG_LEVEL, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def get_session_dir() -> str | None:
    """Directory for JSON session snapshots; None disables file persistence."""
    return os.environ.get(ENV_SESSION_DIR) or None


def get_session_expiry_seconds() -> int:
    raw = os.environ.get(ENV_SESSION_EXPIRY_SECONDS)
    if not raw:
        return DEFAULT_SESSION_EXPIRY_SECONDS
    try:
        return max(0, int(raw))
    except ValueError:
        logging.getLogger(__name__).warning(
            "Ignoring %s=%r (not an integer)", ENV_SESSION_EXPIRY_SECONDS, raw
        )
        return DEFAULT_SESSION_EXPIRY_SECONDS


def get_random_seed() -> int | None:
    raw = os.environ.get(ENV_RANDOM_SEED)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logging.getLogger(__name__).warning("Ignoring %s=%r (not an integer)", ENV_RANDOM_SEED, raw)
        return None


def make_rng(offset: int = 0) -> random.Random:
    """Room random source: seeded from SALEM_RANDOM_SEED (plus offset) when set."""
    seed = get_random_seed()
    return random.Random(seed + offset if seed is not None else None)


def get_cors_origins() -> list[str]:
    raw = os.environ.get(ENV_CORS_ORIGINS, "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


def configure_logging() -> None:
    """Install a basic root handler at the configured level."""
    logging.basicConfig(level=get_log_level(), format=LOG_FORMAT)
