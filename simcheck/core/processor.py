"""Per-event pipeline: aggregate every event, evaluate once per tick."""

from __future__ import annotations

from simcheck.core.aggregator import StatusAggregator
from simcheck.core.evaluator import MilestoneEvaluator
from simcheck.core.models import TickEvent
from simcheck.core.state import RunState


class EventProcessor:
    """Feeds snapshot events through the aggregator and the evaluator.

    Events must arrive one at a time from a single task. Every event updates
    the status table; only the first event of a new tick triggers a
    milestone evaluation, after the table reflects that event.
    """

    def __init__(
        self,
        state: RunState,
        aggregator: StatusAggregator | None = None,
        evaluator: MilestoneEvaluator | None = None,
    ):
        self.state = state
        self.aggregator = aggregator or StatusAggregator()
        self.evaluator = evaluator or MilestoneEvaluator()
        self.evaluations = 0

    def process(self, event: TickEvent) -> bool:
        """Apply ``event``; return True if it triggered an evaluation."""
        self.aggregator.apply(self.state, event)
        if not self.state.gate.should_process(event.tick):
            return False
        self.evaluator.evaluate(self.state, event.tick)
        self.evaluations += 1
        return True
