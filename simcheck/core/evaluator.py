"""
Milestone evaluation for simcheck.

Runs once per distinct tick and advances each unresolved milestone against
the aggregated status table.
"""

from __future__ import annotations

import json

from simcheck.core.models import Milestone, MilestoneOutcome, StatusTable
from simcheck.core.state import RunState
from simcheck.utils.logging import get_logger

logger = get_logger("evaluator")

SEPARATOR = "==============================="


def failing_checks(
    milestone: Milestone,
    status: StatusTable,
    tracked_rooms: list[str],
) -> dict[str, list[str]]:
    """Map each failing room to the check keys it does not yet meet.

    Tracked rooms missing from the table fail every key of the check.
    """
    failed: dict[str, list[str]] = {}
    for room in tracked_rooms:
        room_status = status.get(room)
        if room_status is None:
            failed[room] = sorted(milestone.check)
            continue
        keys = [
            key for key, threshold in milestone.check.items()
            if not room_status.meets(key, threshold)
        ]
        if keys:
            failed[room] = keys
    return failed


class MilestoneEvaluator:
    """Advances sticky milestone outcomes for one tick at a time."""

    def evaluate(self, state: RunState, tick: int) -> list[Milestone]:
        """Evaluate every unresolved milestone at ``tick``.

        A milestone is satisfied only when the status table holds every
        tracked room and each of them meets every threshold of the check.
        Satisfied milestones resolve as succeeded before their deadline and
        failed from the deadline on. An unsatisfied milestone evaluated
        exactly at its deadline tick records the failing rooms and stays
        unresolved.

        Returns:
            The run's milestone list, updated in place
        """
        complete = state.table_complete

        for milestone in state.milestones:
            if milestone.is_resolved:
                continue

            failed = failing_checks(milestone, state.status, state.tracked_rooms)
            if complete and not failed:
                outcome = milestone.resolve(tick)
                self._log_resolution(milestone, outcome, tick)
            elif tick == milestone.deadline_tick:
                milestone.record_deadline_miss(failed)
                logger.warning(SEPARATOR)
                logger.warning(
                    f"{tick} Milestone: Failed {json.dumps(milestone.summary())} "
                    f"status: {json.dumps(_status_payload(state.status))}"
                )

        return state.milestones

    def _log_resolution(self, milestone: Milestone, outcome: MilestoneOutcome, tick: int) -> None:
        logger.info(SEPARATOR)
        if outcome is MilestoneOutcome.SUCCEEDED:
            logger.info(f"{tick} Milestone: Success {json.dumps(milestone.summary())}")
        else:
            logger.warning(f"{tick} Milestone: Reached too late {json.dumps(milestone.summary())}")


def _status_payload(status: StatusTable) -> dict:
    return {room: room_status.model_dump(by_alias=True) for room, room_status in status.items()}
