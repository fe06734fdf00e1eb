"""
Run controller for simcheck.

Drives one run through its phases:

    SETUP -> STREAMING -> AWAITING_TICKS -> FINALIZING -> PASSED | FAILED

A set cancellation event moves SETUP or AWAITING_TICKS straight to FINALIZING
and ends the run as CANCELLED, without a verdict. A run cancelled during SETUP
never resumes the simulation.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Optional

from simcheck.app.config import SimCheckConfig
from simcheck.core.models import Milestone, RunReport
from simcheck.core.processor import EventProcessor
from simcheck.core.state import RunState
from simcheck.infrastructure.feed import EventFeed
from simcheck.infrastructure.report import ReportSink
from simcheck.infrastructure.server_client import ProvisioningError, ServerClient
from simcheck.utils.logging import get_logger, log_error, log_operation

logger = get_logger("controller")


class RunPhase(str, Enum):
    """Phases of a run."""
    SETUP = "setup"
    STREAMING = "streaming"
    AWAITING_TICKS = "awaiting_ticks"
    FINALIZING = "finalizing"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class MilestonesNotMetError(Exception):
    """Required milestones were not reached in time."""

    def __init__(self, failures: list[Milestone], last_tick: int):
        names = ", ".join(milestone.id for milestone in failures)
        super().__init__(f"Not all milestones are hit: {names} (tick {last_tick})")
        self.failures = failures
        self.last_tick = last_tick


def required_failures(milestones: list[Milestone], last_tick: int) -> list[Milestone]:
    """Required milestones whose deadline has passed without an on-time success."""
    return [
        milestone for milestone in milestones
        if milestone.required
        and milestone.deadline_tick < last_tick
        and milestone.success is not True
    ]


async def _unless_cancelled(step: Awaitable[Any], cancel: asyncio.Event) -> bool:
    """Await ``step`` unless ``cancel`` is set first; return True if cancelled."""
    step_task = asyncio.ensure_future(step)
    cancel_task = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({step_task, cancel_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        step_task.cancel()
        raise
    finally:
        cancel_task.cancel()
    if step_task.done():
        step_task.result()
        return False
    step_task.cancel()
    try:
        await step_task
    except asyncio.CancelledError:
        pass
    return True


@dataclass
class RunResult:
    """Outcome of a run: the terminal phase, the report and any failures."""

    phase: RunPhase
    report: RunReport
    failures: list[Milestone] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.phase is RunPhase.PASSED

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    def raise_for_verdict(self) -> None:
        """Raise :class:`MilestonesNotMetError` if the run failed."""
        if self.phase is RunPhase.FAILED:
            raise MilestonesNotMetError(self.failures, self.report.last_tick)


class RunController:
    """Provisions the server, follows the feed, and judges the milestones.

    Usage:
        async with ServerClient(config.server_url) as server:
            controller = RunController(config, server, feed, sink, max_ticks=500)
            result = await controller.run(cancel_event)
    """

    def __init__(
        self,
        config: SimCheckConfig,
        server: ServerClient,
        feed: EventFeed,
        sink: ReportSink,
        max_ticks: float = math.inf,
        state: Optional[RunState] = None,
    ):
        self.config = config
        self.server = server
        self.feed = feed
        self.sink = sink
        self.max_ticks = max_ticks
        self.state = state or RunState(
            tracked_rooms=list(config.tracked_rooms),
            milestones=config.build_milestones(),
        )
        self.processor = EventProcessor(self.state)
        self.phase = RunPhase.SETUP
        self._feed_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------------

    async def run(self, cancel: Optional[asyncio.Event] = None) -> RunResult:
        """Run every phase and return the result.

        A cancellation during Setup goes straight to Finalizing; the
        simulation is never resumed.

        Raises:
            ProvisioningError: If any setup call fails
        """
        cancel = cancel or asyncio.Event()
        try:
            if await self.setup(cancel) or cancel.is_set():
                return await self.finalize(cancelled=True)
            await self.start_streaming()
            cancelled = await self.await_ticks(cancel)
            return await self.finalize(cancelled=cancelled)
        finally:
            await self._stop_feed()

    async def setup(self, cancel: Optional[asyncio.Event] = None) -> bool:
        """Reset the server and spawn the configured bots.

        Each step races ``cancel``; once it is set the remaining steps are
        skipped.

        Returns:
            True if setup was cut short by cancellation
        """
        self._enter(RunPhase.SETUP)
        cancel = cancel or asyncio.Event()
        server = self.server
        config = self.config
        steps = (
            partial(server.wait_until_ready, timeout=config.startup_timeout),
            server.reset_all_data,
            server.pause_simulation,
            partial(server.set_tick_duration, config.tick_duration),
            server.remove_bots,
            partial(server.set_shard_name, config.shard_name),
            self._spawn_bots,
        )
        try:
            for step in steps:
                if cancel.is_set() or await _unless_cancelled(step(), cancel):
                    logger.warning("Cancellation received during setup")
                    return True
        except ProvisioningError as exc:
            log_error(logger, "setup", exc, {"server": server.base_url})
            raise
        return False

    async def _spawn_bots(self) -> None:
        server = self.server
        rooms = self.config.rooms
        await asyncio.gather(*(server.spawn_bot(bot, room) for room, bot in rooms.items()))
        missing = sorted(set(rooms) - set(server.rooms_seen))
        if missing:
            raise ProvisioningError(f"Bots were not spawned in: {', '.join(missing)}")

    async def start_streaming(self) -> None:
        """Start consuming the feed, then resume the simulation."""
        self._enter(RunPhase.STREAMING)
        self._feed_task = asyncio.create_task(self._consume_feed(), name="simcheck-feed")
        await self.server.resume_simulation()

    async def await_ticks(self, cancel: asyncio.Event) -> bool:
        """Wait until the tick budget is reached or ``cancel`` is set.

        Returns:
            True if the wait ended because of cancellation
        """
        self._enter(RunPhase.AWAITING_TICKS)
        appendix = f" with runtime {self.max_ticks} ticks" if 0 < self.max_ticks < math.inf else ""
        logger.info(f"> Start the simulation{appendix}")

        if self.max_ticks <= 0:
            return cancel.is_set()

        while self.state.last_tick < self.max_ticks:
            if cancel.is_set():
                return True
            try:
                await asyncio.wait_for(cancel.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass
        return False

    async def finalize(self, cancelled: bool = False) -> RunResult:
        """Build and deliver the report; judge the run unless cancelled."""
        self._enter(RunPhase.FINALIZING)
        await self._stop_feed()

        state = self.state
        last_tick = state.last_tick
        if cancelled:
            logger.warning("Cancellation received...")
        logger.info(f"{last_tick} End of simulation")

        report = RunReport(
            status={room: status.model_copy() for room, status in state.status.items()},
            milestones=[milestone.model_copy(deep=True) for milestone in state.milestones],
            last_tick=last_tick,
            elapsed_seconds=state.elapsed_seconds,
            cancelled=cancelled,
        )
        await self._deliver(report)

        if cancelled:
            self._enter(RunPhase.CANCELLED)
            return RunResult(phase=self.phase, report=report)

        failures = required_failures(report.milestones, last_tick)
        for failure in failures:
            logger.error(f"{last_tick} Milestone failed {failure.summary()}")

        if failures:
            self._enter(RunPhase.FAILED)
        else:
            logger.info(f"{last_tick} Status check: passed")
            self._enter(RunPhase.PASSED)

        logger.info(f"{last_tick} ticks elapsed, {int(report.elapsed_seconds)} seconds")
        return RunResult(phase=self.phase, report=report, failures=failures)

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    def _enter(self, phase: RunPhase) -> None:
        self.phase = phase
        log_operation(logger, "Phase", {"phase": phase.value, "tick": self.state.last_tick})

    async def _consume_feed(self) -> None:
        try:
            async for event in self.feed.events():
                self.processor.process(event)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            log_error(logger, "feed", exc, {"tick": self.state.last_tick})
        else:
            logger.info(f"{self.state.last_tick} Event feed closed")

    async def _stop_feed(self) -> None:
        task = self._feed_task
        if task is None:
            return
        self._feed_task = None
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _deliver(self, report: RunReport) -> None:
        try:
            await self.sink.deliver(report)
        except Exception as exc:
            log_error(logger, "report delivery", exc, {"tick": report.last_tick})
