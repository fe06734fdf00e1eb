"""
Core models for simcheck.

Defines the per-room status record, milestone definitions with their sticky
outcome, the snapshot events consumed from the simulation feed, and the final
run report.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ============================================================================
# Room Status
# ============================================================================


# Fields a milestone check may compare against
CHECKABLE_FIELDS: frozenset[str] = frozenset({"creeps", "progress", "level", "structures"})


class RoomStatus(BaseModel):
    """Aggregated state of one tracked room.

    Attributes:
        controller_id: Id of the room controller, set once discovered
        creeps: Number of live creeps in the room
        progress: Controller progress within the current level
        level: Controller level, never decreases during a run
        structures: Number of built structures in the room
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    controller_id: Optional[str] = Field(default=None, serialization_alias="controller")
    creeps: int = Field(default=0, ge=0)
    progress: int = Field(default=0, ge=0)
    level: int = Field(default=0, ge=0)
    structures: int = Field(default=0, ge=0)

    def meets(self, field: str, threshold: int) -> bool:
        """Whether ``field`` is at or above ``threshold``."""
        return getattr(self, field) >= threshold


StatusTable = dict[str, RoomStatus]


def new_status_table(rooms: list[str]) -> StatusTable:
    """Create a zeroed status entry for every tracked room."""
    return {room: RoomStatus() for room in rooms}


# ============================================================================
# Milestones
# ============================================================================


class MilestoneOutcome(str, Enum):
    """Sticky outcome of a milestone."""
    UNRESOLVED = "unresolved"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not MilestoneOutcome.UNRESOLVED


class MilestoneAlreadyResolved(RuntimeError):
    """Raised when a resolved milestone is mutated again."""

    def __init__(self, milestone: "Milestone"):
        super().__init__(
            f"Milestone '{milestone.id}' is already {milestone.outcome.value}"
        )
        self.milestone = milestone


class Milestone(BaseModel):
    """A progress checkpoint that every tracked room must reach by a tick.

    The outcome moves from ``UNRESOLVED`` to a terminal value at most once,
    through :meth:`resolve`. ``failed_rooms`` is written at most once,
    through :meth:`record_deadline_miss`, and only while unresolved.

    Attributes:
        id: Label used in logs and reports
        description: Free-form description
        check: Minimum value per RoomStatus field
        deadline_tick: Tick before which the check must first hold
        required: Whether missing this milestone fails the run
        outcome: Sticky tri-state outcome
        tick_reached: Tick at which the check first held
        failed_rooms: Rooms and check keys still failing at the deadline
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default="", description="Milestone label")
    description: str = Field(default="")
    check: dict[str, int] = Field(default_factory=dict)
    deadline_tick: int = Field(
        validation_alias=AliasChoices("deadline_tick", "deadlineTick", "tick"),
        ge=0,
    )
    required: bool = Field(default=True)
    outcome: MilestoneOutcome = Field(default=MilestoneOutcome.UNRESOLVED)
    tick_reached: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("tick_reached", "tickReached"),
    )
    failed_rooms: Optional[dict[str, list[str]]] = Field(
        default=None,
        validation_alias=AliasChoices("failed_rooms", "failedRooms"),
    )

    @field_validator("check")
    @classmethod
    def _validate_check(cls, value: dict[str, int]) -> dict[str, int]:
        unknown = sorted(set(value) - CHECKABLE_FIELDS)
        if unknown:
            raise ValueError(f"unknown check field(s): {', '.join(unknown)}")
        negative = sorted(key for key, threshold in value.items() if threshold < 0)
        if negative:
            raise ValueError(f"negative threshold for: {', '.join(negative)}")
        return value

    @property
    def is_resolved(self) -> bool:
        return self.outcome.is_terminal

    @property
    def success(self) -> Optional[bool]:
        """Outcome as ``None``/``True``/``False``."""
        if self.outcome is MilestoneOutcome.UNRESOLVED:
            return None
        return self.outcome is MilestoneOutcome.SUCCEEDED

    def resolve(self, tick: int) -> MilestoneOutcome:
        """Record that the check first held at ``tick``.

        Reaching the check before the deadline is a success, reaching it at
        or after the deadline is a failure.

        Raises:
            MilestoneAlreadyResolved: If the outcome is already terminal
        """
        if self.is_resolved:
            raise MilestoneAlreadyResolved(self)
        self.outcome = (
            MilestoneOutcome.SUCCEEDED if tick < self.deadline_tick
            else MilestoneOutcome.FAILED
        )
        self.tick_reached = tick
        return self.outcome

    def record_deadline_miss(self, failed_rooms: dict[str, list[str]]) -> None:
        """Store which rooms still failed which checks at the deadline."""
        if self.is_resolved:
            raise MilestoneAlreadyResolved(self)
        self.failed_rooms = {room: list(keys) for room, keys in failed_rooms.items()}

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "check": self.check,
            "tick": self.deadline_tick,
            "required": self.required,
            "success": self.success,
            "tickReached": self.tick_reached,
            "failedRooms": self.failed_rooms,
        }


# ============================================================================
# Feed Events
# ============================================================================


class TickEvent(BaseModel):
    """One snapshot record from the simulation feed.

    ``objects`` maps room name to object id to the object's changed fields.
    A ``None`` object means the object no longer exists.
    """

    tick: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("tick", "gameTime"),
    )
    objects: dict[str, dict[str, Optional[dict[str, Any]]]] = Field(default_factory=dict)

    @field_validator("tick", mode="before")
    @classmethod
    def _default_tick(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("objects", mode="before")
    @classmethod
    def _default_objects(cls, value: Any) -> Any:
        return {} if value is None else value

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "TickEvent":
        """Parse a bare event or one wrapped in ``{"data": {...}}``."""
        if isinstance(record.get("data"), dict):
            record = record["data"]
        return cls.model_validate(record)


# ============================================================================
# Run Report
# ============================================================================


class RunReport(BaseModel):
    """Final, read-only snapshot of a run handed to report sinks."""

    model_config = ConfigDict(frozen=True)

    status: dict[str, RoomStatus]
    milestones: list[Milestone]
    last_tick: int
    elapsed_seconds: float
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    cancelled: bool = False

    def to_payload(self) -> dict[str, Any]:
        """JSON-ready representation used by every sink."""
        return {
            "status": {
                room: status.model_dump(by_alias=True)
                for room, status in self.status.items()
            },
            "milestones": [milestone.summary() for milestone in self.milestones],
            "lastTick": self.last_tick,
            "elapsedSeconds": round(self.elapsed_seconds, 3),
            "startedAt": self.started_at.isoformat(),
            "cancelled": self.cancelled,
        }
