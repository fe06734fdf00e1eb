"""Folds feed snapshots into the per-room status table."""

from __future__ import annotations

from typing import Any, Optional

from simcheck.core.models import TickEvent
from simcheck.core.state import RoomObjects, RunState
from simcheck.utils.logging import get_logger

logger = get_logger("aggregator")

CREEP_TYPE = "creep"
CONTROLLER_TYPE = "controller"

# World objects that are neither creeps nor built structures
NON_STRUCTURE_TYPES = frozenset({
    "source",
    "mineral",
    "energy",
    "resource",
    "tombstone",
    "ruin",
    "constructionSite",
    "flag",
    "deposit",
    "portal",
})


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


class StatusAggregator:
    """Applies snapshot events to a :class:`RunState`.

    Creep and structure counts are sizes of per-room id sets, so applying the
    same event twice leaves the table unchanged. Rooms that are not tracked
    are ignored, and fields of the wrong shape are skipped.
    """

    def apply(self, state: RunState, event: TickEvent) -> RunState:
        for room, entities in event.objects.items():
            status = state.status.get(room)
            if status is None or not isinstance(entities, dict):
                continue
            known = state.objects.setdefault(room, RoomObjects())

            for object_id, entity in entities.items():
                if entity is None:
                    known.creeps.discard(object_id)
                    known.structures.discard(object_id)
                    continue
                if not isinstance(entity, dict):
                    continue
                self._apply_entity(state, event.tick, room, known, object_id, entity)

            status.creeps = len(known.creeps)
            status.structures = len(known.structures)

        return state

    def _apply_entity(
        self,
        state: RunState,
        tick: int,
        room: str,
        known: RoomObjects,
        object_id: str,
        entity: dict[str, Any],
    ) -> None:
        status = state.status[room]
        entity_type = entity.get("type")

        if entity_type == CREEP_TYPE:
            known.creeps.add(object_id)
        elif entity_type == CONTROLLER_TYPE or (
            entity_type is None and object_id == status.controller_id
        ):
            self._apply_controller(state, tick, room, object_id, entity)
        elif isinstance(entity_type, str) and entity_type not in NON_STRUCTURE_TYPES:
            known.structures.add(object_id)

    def _apply_controller(
        self,
        state: RunState,
        tick: int,
        room: str,
        object_id: str,
        entity: dict[str, Any],
    ) -> None:
        status = state.status[room]
        if status.controller_id is None:
            controller_id = entity.get("_id") or entity.get("id") or object_id
            status.controller_id = str(controller_id)
            logger.debug(f"{tick} Controller {status.controller_id} found in {room}")

        level = _as_int(entity.get("level"))
        if level is not None and level >= 0:
            if level > status.level:
                logger.info(f"{tick} {room} reached controller level {level}")
            status.level = max(status.level, level)

        progress = _as_int(entity.get("progress"))
        if progress is not None and progress >= 0:
            status.progress = progress
