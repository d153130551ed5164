"""
Centralized configuration for the Queso Queue bot.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _parse_int(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_float(env_var: str, default: float) -> float:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _parse_str_list(env_var: str, default: list[str]) -> list[str]:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


def _parse_optional_int(env_var: str) -> int | None:
    raw = os.getenv(env_var)
    if not raw:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


DISCORD_BOT_TOKEN = os.getenv("DISCORD_BOT_TOKEN")
QUEUE_GUILD_ID = _parse_optional_int("QUEUE_GUILD_ID")
# The channel owner may have several entries queued at once
CHANNEL_OWNER_ID = _parse_optional_int("CHANNEL_OWNER_ID")

# Save files
QUEUE_DATA_DIR = os.getenv("QUEUE_DATA_DIR", "data")
# Directory holding the oldest save files (queso.save, userWaitTime.txt, ...)
QUEUE_LEGACY_DIR = os.getenv("QUEUE_LEGACY_DIR", ".")
PRETTY_SAVE_FILES = _parse_bool("PRETTY_SAVE_FILES", False)
QUEUE_PERSISTENCE_ENABLED = _parse_bool("QUEUE_PERSISTENCE_ENABLED", True)
IDENTITY_LOOKUP_CHUNK_SIZE = _parse_int("IDENTITY_LOOKUP_CHUNK_SIZE", 100)

# Queue rules
QUEUE_MAX_SIZE: int | None = _parse_optional_int("QUEUE_MAX_SIZE")
CUSTOM_CODES_ENABLED = _parse_bool("CUSTOM_CODES_ENABLED", True)

# Weighted selection
WAITING_TICK_SECONDS = _parse_int("WAITING_TICK_SECONDS", 60)
SUBSCRIBER_WEIGHT_MULTIPLIER = _parse_float("SUBSCRIBER_WEIGHT_MULTIPLIER", 1.0)
SUBSCRIBER_ROLE_NAMES = _parse_str_list("SUBSCRIBER_ROLE_NAMES", ["Subscriber"])
