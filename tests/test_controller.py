"""Run Controller Tests.

Tests for:
- Setup command sequence and provisioning failures
- Passed and failed verdicts after the tick budget
- Zero tick budget
- Cancellation during setup and while awaiting ticks
- Best-effort report delivery
"""

import asyncio
import math
import unittest

import httpx

from simcheck.app.config import SimCheckConfig
from simcheck.app.controller import (
    MilestonesNotMetError,
    RunController,
    RunPhase,
    required_failures,
)
from simcheck.core.models import Milestone, MilestoneOutcome, TickEvent
from simcheck.infrastructure.feed import QueueEventFeed
from simcheck.infrastructure.server_client import CommandError, ProvisioningError, ServerClient

ROOMS = {"W1N1": "simplebot", "W2N2": "simplebot"}


class FakeServer:
    """Answers CLI commands like the simulation server."""

    def __init__(self, fail_on=None, spawn_reply="spawned"):
        self.commands = []
        self.fail_on = fail_on
        self.spawn_reply = spawn_reply

    def __call__(self, request: httpx.Request) -> httpx.Response:
        command = request.content.decode()
        self.commands.append(command)
        if self.fail_on and command.startswith(self.fail_on):
            return httpx.Response(500, text="server exploded")
        if command.startswith("bots.spawn"):
            return httpx.Response(200, text=f"User {self.spawn_reply}")
        return httpx.Response(200, text="OK")


class RecordingSink:
    def __init__(self, fail=False):
        self.reports = []
        self.fail = fail

    async def deliver(self, report):
        self.reports.append(report)
        if self.fail:
            raise RuntimeError("collector down")


def _progress_event(tick, progress):
    return TickEvent(tick=tick, objects={
        room: {f"ctrl-{room}": {"type": "controller", "level": 1, "progress": progress}}
        for room in ROOMS
    })


class RunControllerTest(unittest.IsolatedAsyncioTestCase):
    """Test the run phases end to end against fakes."""

    async def asyncSetUp(self) -> None:
        self.fake = FakeServer()
        self.server = ServerClient(transport=httpx.MockTransport(self.fake))
        self.feed = QueueEventFeed()
        self.sink = RecordingSink()

    async def asyncTearDown(self) -> None:
        await self.server.close()

    def _controller(self, milestones, max_ticks=math.inf, sink=None):
        config = SimCheckConfig(
            rooms=dict(ROOMS),
            milestones=milestones,
            tick_duration=100,
            poll_interval=0.01,
            startup_timeout=1,
        )
        return RunController(config, self.server, self.feed, sink or self.sink, max_ticks=max_ticks)

    async def test_setup_sequence(self) -> None:
        controller = self._controller([], max_ticks=0)

        await controller.run()

        self.assertEqual(self.fake.commands[:6], [
            "help()",
            "system.resetAllData()",
            "system.pauseSimulation()",
            "system.setTickDuration(100)",
            "utils.removeBots()",
            'utils.setShardName("performanceServer")',
        ])
        spawns = [c for c in self.fake.commands if c.startswith("bots.spawn")]
        self.assertEqual(len(spawns), 2)
        self.assertEqual(self.fake.commands[-1], "system.resumeSimulation()")

    async def test_on_time_milestone_passes(self) -> None:
        controller = self._controller(
            [{"id": "progress", "check": {"progress": 100}, "tick": 50, "required": True}],
            max_ticks=100,
        )
        await self.feed.put(_progress_event(40, 100))
        await self.feed.put(TickEvent(tick=100))

        result = await controller.run()

        self.assertIs(result.phase, RunPhase.PASSED)
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.report.last_tick, 100)
        milestone = result.report.milestones[0]
        self.assertEqual(milestone.outcome, MilestoneOutcome.SUCCEEDED)
        self.assertEqual(milestone.tick_reached, 40)
        result.raise_for_verdict()
        self.assertEqual(len(self.sink.reports), 1)

    async def test_late_required_milestone_fails(self) -> None:
        controller = self._controller(
            [{"id": "progress", "check": {"progress": 100}, "tick": 50, "required": True}],
            max_ticks=100,
        )
        for event in (_progress_event(10, 20), _progress_event(60, 100), TickEvent(tick=100)):
            await self.feed.put(event)

        result = await controller.run()

        self.assertIs(result.phase, RunPhase.FAILED)
        self.assertEqual(result.exit_code, 1)
        self.assertEqual([m.id for m in result.failures], ["progress"])
        self.assertEqual(result.report.milestones[0].tick_reached, 60)
        with self.assertRaises(MilestonesNotMetError) as ctx:
            result.raise_for_verdict()
        self.assertIn("progress", str(ctx.exception))

    async def test_optional_milestone_does_not_fail_run(self) -> None:
        controller = self._controller(
            [{"id": "walls", "check": {"structures": 50}, "tick": 5, "required": False}],
            max_ticks=10,
        )
        await self.feed.put(TickEvent(tick=10))

        result = await controller.run()

        self.assertIs(result.phase, RunPhase.PASSED)

    async def test_zero_budget_finishes_immediately(self) -> None:
        controller = self._controller(
            [{"id": "progress", "check": {"progress": 100}, "tick": 50}],
            max_ticks=0,
        )

        result = await controller.run()

        self.assertIs(result.phase, RunPhase.PASSED)
        self.assertEqual(result.report.last_tick, 0)
        self.assertEqual(result.report.milestones[0].outcome, MilestoneOutcome.UNRESOLVED)

    async def test_cancellation_reports_without_verdict(self) -> None:
        controller = self._controller(
            [{"id": "progress", "check": {"progress": 100}, "tick": 10}],
        )
        cancel = asyncio.Event()
        for tick in (5, 23):
            await self.feed.put(TickEvent(tick=tick))

        task = asyncio.create_task(controller.run(cancel))
        while controller.state.last_tick < 23:
            await asyncio.sleep(0.01)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=2)

        self.assertIs(result.phase, RunPhase.CANCELLED)
        self.assertTrue(result.report.cancelled)
        self.assertEqual(result.report.last_tick, 23)
        self.assertEqual(result.failures, [])
        result.raise_for_verdict()
        self.assertEqual(len(self.sink.reports), 1)

    async def test_cancel_before_setup_touches_nothing(self) -> None:
        controller = self._controller([], max_ticks=50)
        cancel = asyncio.Event()
        cancel.set()

        result = await asyncio.wait_for(controller.run(cancel), timeout=2)

        self.assertIs(result.phase, RunPhase.CANCELLED)
        self.assertTrue(result.report.cancelled)
        self.assertEqual(self.fake.commands, [])
        self.assertEqual(len(self.sink.reports), 1)

    async def test_cancel_during_setup_never_resumes(self) -> None:
        cancel = asyncio.Event()
        commands = []

        async def handler(request: httpx.Request) -> httpx.Response:
            command = request.content.decode()
            commands.append(command)
            if command == "utils.removeBots()":
                cancel.set()
                await asyncio.sleep(10)
            return httpx.Response(200, text="OK")

        config = SimCheckConfig(rooms=dict(ROOMS), poll_interval=0.01, startup_timeout=1)
        async with ServerClient(transport=httpx.MockTransport(handler)) as server:
            controller = RunController(config, server, self.feed, self.sink, max_ticks=50)
            result = await asyncio.wait_for(controller.run(cancel), timeout=2)

        self.assertIs(result.phase, RunPhase.CANCELLED)
        self.assertEqual(commands[-1], "utils.removeBots()")
        self.assertNotIn("system.resumeSimulation()", commands)
        self.assertFalse(any(c.startswith("bots.spawn") for c in commands))
        self.assertEqual(len(self.sink.reports), 1)

    async def test_feed_end_keeps_waiting_until_cancelled(self) -> None:
        controller = self._controller([], max_ticks=50)
        await self.feed.put(TickEvent(tick=3))
        await self.feed.close()
        cancel = asyncio.Event()

        task = asyncio.create_task(controller.run(cancel))
        await asyncio.sleep(0.05)
        self.assertFalse(task.done())
        self.assertIs(controller.phase, RunPhase.AWAITING_TICKS)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=2)

        self.assertEqual(result.report.last_tick, 3)

    async def test_provisioning_failure_aborts(self) -> None:
        self.fake.fail_on = "system.resetAllData"
        controller = self._controller([], max_ticks=0)

        with self.assertRaises(CommandError):
            await controller.run()

        self.assertEqual(self.sink.reports, [])
        self.assertNotIn("system.resumeSimulation()", self.fake.commands)

    async def test_unconfirmed_spawn_aborts(self) -> None:
        self.fake.spawn_reply = "not found"
        controller = self._controller([], max_ticks=0)

        with self.assertRaises(ProvisioningError) as ctx:
            await controller.run()

        self.assertIn("W1N1", str(ctx.exception))

    async def test_report_failure_does_not_change_verdict(self) -> None:
        sink = RecordingSink(fail=True)
        controller = self._controller([], max_ticks=0, sink=sink)

        with self.assertLogs("simcheck.controller", level="ERROR"):
            result = await controller.run()

        self.assertIs(result.phase, RunPhase.PASSED)
        self.assertEqual(len(sink.reports), 1)

    async def test_report_is_a_snapshot(self) -> None:
        controller = self._controller([{"id": "m", "check": {}, "tick": 10}], max_ticks=0)

        result = await controller.run()
        controller.state.status["W1N1"].creeps = 9

        self.assertEqual(result.report.status["W1N1"].creeps, 0)
        self.assertIsNot(result.report.milestones[0], controller.state.milestones[0])


class RequiredFailuresTest(unittest.TestCase):
    """Test the fail set used for the verdict."""

    def test_fail_set(self) -> None:
        on_time = Milestone(id="on-time", check={}, deadline_tick=10)
        on_time.resolve(5)
        late = Milestone(id="late", check={}, deadline_tick=10)
        late.resolve(12)
        unresolved = Milestone(id="unresolved", check={"level": 8}, deadline_tick=10)
        not_due = Milestone(id="not-due", check={"level": 8}, deadline_tick=20)
        at_last_tick = Milestone(id="at-last-tick", check={"level": 8}, deadline_tick=15)
        optional = Milestone(id="optional", check={"level": 8}, deadline_tick=1, required=False)

        failures = required_failures(
            [on_time, late, unresolved, not_due, at_last_tick, optional],
            last_tick=15,
        )

        self.assertEqual([m.id for m in failures], ["late", "unresolved"])


if __name__ == "__main__":
    unittest.main()
