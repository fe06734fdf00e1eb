"""Application layer: configuration, run controller and CLI."""

from simcheck.app.config import ConfigError, SimCheckConfig, parse_tick_budget
from simcheck.app.controller import (
    MilestonesNotMetError,
    RunController,
    RunPhase,
    RunResult,
    required_failures,
)

__all__ = [
    "ConfigError",
    "MilestonesNotMetError",
    "RunController",
    "RunPhase",
    "RunResult",
    "SimCheckConfig",
    "parse_tick_budget",
    "required_failures",
]
