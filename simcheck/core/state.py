"""
Run state for simcheck.

A single ``RunState`` owns everything that changes while a run is streaming:
the status table, the milestone list, the simulation clock, and the object
ids the aggregator has already classified. Components receive it explicitly
instead of sharing module-level globals.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from simcheck.core.models import Milestone, StatusTable, new_status_table
from simcheck.utils.logging import get_logger

logger = get_logger("state")


@dataclass
class SimulationClock:
    """Latest tick observed from the feed. Never decreases."""

    last_tick: int = 0

    def advance(self, tick: int) -> None:
        if tick < self.last_tick:
            raise ValueError(f"Tick {tick} is behind the clock at {self.last_tick}")
        self.last_tick = tick


class TickGate:
    """Lets exactly one event per distinct tick trigger evaluation.

    The first event ever seen passes. After that an event passes only when
    its tick is ahead of the clock; repeats and stragglers are rejected.
    """

    def __init__(self, clock: SimulationClock | None = None):
        self.clock = clock or SimulationClock()
        self._seen_any = False
        self._last_stale: int | None = None

    def should_process(self, event_tick: int) -> bool:
        if not self._seen_any or event_tick > self.clock.last_tick:
            self._seen_any = True
            self.clock.advance(event_tick)
            return True
        if event_tick < self.clock.last_tick and event_tick != self._last_stale:
            self._last_stale = event_tick
            logger.warning(
                f"{self.clock.last_tick} Out-of-order event for tick {event_tick} ignored for evaluation"
            )
        return False

    def current_tick(self) -> int:
        return self.clock.last_tick


@dataclass
class RoomObjects:
    """Object ids already classified in one room."""

    creeps: set[str] = field(default_factory=set)
    structures: set[str] = field(default_factory=set)


@dataclass
class RunState:
    """Mutable state of one run, owned by the single processing task."""

    tracked_rooms: list[str]
    milestones: list[Milestone] = field(default_factory=list)
    status: StatusTable = field(default_factory=dict)
    gate: TickGate = field(default_factory=TickGate)
    objects: dict[str, RoomObjects] = field(default_factory=dict)
    started: float = field(default_factory=time.monotonic)

    def __post_init__(self):
        if not self.status:
            self.status = new_status_table(self.tracked_rooms)
        for room in self.tracked_rooms:
            self.objects.setdefault(room, RoomObjects())

    @property
    def last_tick(self) -> int:
        return self.gate.current_tick()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.started

    @property
    def table_complete(self) -> bool:
        """Whether every tracked room has a status entry."""
        return len(self.status) == len(self.tracked_rooms) and all(
            room in self.status for room in self.tracked_rooms
        )
