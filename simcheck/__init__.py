"""simcheck - milestone checks for bots running on a simulation server.

Follows a live snapshot feed, aggregates per-room status, and judges a list
of milestones against it once per tick.

Core Components:
- RunController: provisions the server and drives the run to a verdict
- EventProcessor: aggregates each snapshot and evaluates once per tick
- MilestoneEvaluator: advances sticky milestone outcomes

Usage:
    simcheck 1500 --config simcheck.yaml
"""

from .core import (
    EventProcessor,
    Milestone,
    MilestoneEvaluator,
    MilestoneOutcome,
    RoomStatus,
    RunState,
    StatusAggregator,
    TickEvent,
    TickGate,
)

__version__ = "0.1.0"

__all__ = [
    "EventProcessor",
    "Milestone",
    "MilestoneEvaluator",
    "MilestoneOutcome",
    "RoomStatus",
    "RunState",
    "StatusAggregator",
    "TickEvent",
    "TickGate",
]
