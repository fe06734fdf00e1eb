"""
simcheck Configuration.

Loads the run configuration (server, rooms, milestones) from JSON or YAML
and applies environment overrides.
"""

from __future__ import annotations

import json
import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from simcheck.core.models import Milestone
from simcheck.utils.logging import get_logger

logger = get_logger("config")

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

DEFAULT_CONFIG_FILES = ("simcheck.json", "simcheck.yaml", "simcheck.yml")


class ConfigError(Exception):
    """Configuration file is missing, unreadable, or of the wrong shape."""
    pass


# ============================================================================
# Environment
# ============================================================================


def get_api_key() -> Optional[str]:
    """Read the server credential; an empty value counts as unset."""
    load_dotenv()
    value = os.getenv("STEAM_API_KEY")
    return value or None


def parse_tick_budget(raw: Optional[str]) -> float:
    """Parse the tick budget argument.

    Returns ``math.inf`` (wait until cancelled) for a missing or unparsable
    value, otherwise the non-negative integer given.
    """
    if raw is None or raw == "":
        return math.inf
    try:
        budget = int(raw, 10)
    except (TypeError, ValueError) as exc:
        logger.warning(f"Cannot parse tick budget {raw!r}: {exc}; running without a budget")
        return math.inf
    if budget < 0:
        logger.warning(f"Negative tick budget {budget}; running without a budget")
        return math.inf
    return budget


# ============================================================================
# Configuration
# ============================================================================


@dataclass
class SimCheckConfig:
    """Configuration for one milestone run.

    ``rooms`` maps each room to the bot spawned into it. ``tracked_rooms``
    defaults to every configured room.
    """

    # Server
    server_url: str = "http://localhost:21026"
    feed_url: Optional[str] = None
    results_url: Optional[str] = None
    api_key: Optional[str] = None
    tick_duration: int = 250  # milliseconds
    shard_name: str = "performanceServer"
    startup_timeout: float = 60.0

    # Scenario
    rooms: dict[str, str] = field(default_factory=dict)
    tracked_rooms: list[str] = field(default_factory=list)
    milestones: list[dict[str, Any]] = field(default_factory=list)

    # Run loop
    poll_interval: float = 1.0

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    def __post_init__(self):
        if not self.tracked_rooms:
            self.tracked_rooms = list(self.rooms)
        if self.log_level not in LOG_LEVELS:
            logger.warning(f"Unknown log level {self.log_level!r}; using INFO")
            self.log_level = "INFO"
        if not self.api_key:
            self.api_key = None

    def build_milestones(self) -> list[Milestone]:
        """Validate milestone definitions, dropping malformed ones."""
        milestones = []
        for index, definition in enumerate(self.milestones):
            if not isinstance(definition, dict):
                logger.warning(f"Skipping milestone #{index + 1}: not a mapping")
                continue
            try:
                milestone = Milestone.model_validate(definition)
            except ValidationError as exc:
                logger.warning(
                    f"Skipping malformed milestone #{index + 1}: "
                    f"{exc.error_count()} error(s): {exc.errors()[0]['msg']}"
                )
                continue
            if not milestone.id:
                milestone.id = milestone.description or f"milestone-{index + 1}"
            milestones.append(milestone)
        return milestones

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "SimCheckConfig":
        """Load configuration from a JSON or YAML file.

        Without a path, ``SIMCHECK_CONFIG`` is used, then the first
        ``simcheck.{json,yaml,yml}`` in the working directory. With no file
        at all, defaults plus environment overrides are returned.

        Raises:
            ConfigError: If the file is missing or cannot be parsed
        """
        load_dotenv()

        if config_path is None:
            config_path = os.getenv("SIMCHECK_CONFIG") or _find_default_config()

        data: dict[str, Any] = {}
        if config_path is not None:
            data = _read_config_file(Path(config_path))

        config = cls.from_dict(data)
        config.apply_env()
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SimCheckConfig":
        """Create config from a dictionary, accepting camelCase keys."""
        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data:
                    return data[key]
            return default

        rooms = pick("rooms", default={}) or {}
        if not isinstance(rooms, dict):
            raise ConfigError("'rooms' must map room names to bot names")
        milestones = pick("milestones", default=[]) or []
        if not isinstance(milestones, list):
            raise ConfigError("'milestones' must be a list")

        return cls(
            server_url=pick("server_url", "serverUrl", default=cls.server_url),
            feed_url=pick("feed_url", "feedUrl"),
            results_url=pick("results_url", "resultsUrl"),
            api_key=pick("api_key", "apiKey"),
            tick_duration=_positive_number(
                pick("tick_duration", "tickDuration"), int, "tick_duration", cls.tick_duration
            ),
            shard_name=pick("shard_name", "shardName", default=cls.shard_name),
            startup_timeout=_positive_number(
                pick("startup_timeout", "startupTimeout"), float, "startup_timeout", cls.startup_timeout
            ),
            rooms={str(room): str(bot) for room, bot in rooms.items()},
            tracked_rooms=list(pick("tracked_rooms", "trackedRooms", default=[]) or []),
            milestones=milestones,
            poll_interval=_positive_number(
                pick("poll_interval", "pollInterval"), float, "poll_interval", cls.poll_interval
            ),
            log_level=str(pick("log_level", "logLevel", default="INFO")).upper(),
        )

    def apply_env(self) -> None:
        """Apply environment variable overrides."""
        if env_url := os.getenv("SIMCHECK_SERVER_URL"):
            self.server_url = env_url
        if env_url := os.getenv("SIMCHECK_FEED_URL"):
            self.feed_url = env_url
        if env_url := os.getenv("SIMCHECK_RESULTS_URL"):
            self.results_url = env_url
        if self.api_key is None:
            self.api_key = get_api_key()

    def to_dict(self) -> dict[str, Any]:
        return {
            "server_url": self.server_url,
            "feed_url": self.feed_url,
            "results_url": self.results_url,
            "tick_duration": self.tick_duration,
            "shard_name": self.shard_name,
            "startup_timeout": self.startup_timeout,
            "rooms": dict(self.rooms),
            "tracked_rooms": list(self.tracked_rooms),
            "milestones": list(self.milestones),
            "poll_interval": self.poll_interval,
            "log_level": self.log_level,
            # api_key is never serialized
        }


def _positive_number(value: Any, kind: type, name: str, default: Any) -> Any:
    """Coerce a numeric setting, falling back to its default with a warning."""
    if value is None:
        return default
    try:
        if isinstance(value, bool):
            raise TypeError("booleans are not numbers")
        number = kind(value)
    except (TypeError, ValueError, OverflowError) as exc:
        logger.warning(f"Invalid {name} {value!r} ({exc}); using {default}")
        return default
    if not math.isfinite(number) or number <= 0:
        logger.warning(f"{name} must be a positive number, got {value!r}; using {default}")
        return default
    return number


def _find_default_config() -> Optional[Path]:
    for name in DEFAULT_CONFIG_FILES:
        candidate = Path.cwd() / name
        if candidate.exists():
            return candidate
    return None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data
