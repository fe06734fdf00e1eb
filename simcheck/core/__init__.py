"""
Core milestone tracking for simcheck.

- StatusAggregator: folds feed snapshots into the per-room status table
- TickGate: lets one event per distinct tick trigger evaluation
- MilestoneEvaluator: advances sticky milestone outcomes
- EventProcessor: runs the three in order for each incoming event
"""

from simcheck.core.aggregator import StatusAggregator
from simcheck.core.evaluator import MilestoneEvaluator, failing_checks
from simcheck.core.models import (
    Milestone,
    MilestoneAlreadyResolved,
    MilestoneOutcome,
    RoomStatus,
    RunReport,
    TickEvent,
    new_status_table,
)
from simcheck.core.processor import EventProcessor
from simcheck.core.state import RunState, SimulationClock, TickGate

__all__ = [
    "EventProcessor",
    "Milestone",
    "MilestoneAlreadyResolved",
    "MilestoneEvaluator",
    "MilestoneOutcome",
    "RoomStatus",
    "RunReport",
    "RunState",
    "SimulationClock",
    "StatusAggregator",
    "TickEvent",
    "TickGate",
    "failing_checks",
    "new_status_table",
]
