"""
Report sinks for simcheck.

A sink receives the final :class:`RunReport` once per run, and once more on
a best-effort basis when the run is cancelled.
"""

from __future__ import annotations

import json
from typing import Protocol, runtime_checkable

import httpx
from rich.console import Console

from simcheck.core.models import RunReport
from simcheck.utils.logging import get_logger

logger = get_logger("report")


class ReportDeliveryError(Exception):
    """A report could not be delivered."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class ReportSink(Protocol):
    """Destination for the final run report."""

    async def deliver(self, report: RunReport) -> None:
        ...


class ConsoleReportSink:
    """Prints the status table and milestones as JSON."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()

    async def deliver(self, report: RunReport) -> None:
        payload = report.to_payload()
        self.console.print("[bold]Status:[/bold]")
        self.console.print_json(json.dumps(payload["status"]))
        self.console.print("[bold]Milestones:[/bold]")
        self.console.print_json(json.dumps(payload["milestones"]))


class HttpReportSink:
    """POSTs the report as JSON to a results collector."""

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    @property
    def headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def deliver(self, report: RunReport) -> None:
        """Send the report.

        Raises:
            ReportDeliveryError: If the collector is unreachable or rejects it
        """
        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=httpx.Timeout(self.timeout),
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(self.url, json=report.to_payload())
            except httpx.HTTPError as exc:
                raise ReportDeliveryError(f"Cannot reach collector at {self.url}: {exc}") from exc

        if response.status_code >= 400:
            raise ReportDeliveryError(
                f"Collector rejected report with HTTP {response.status_code}",
                status_code=response.status_code,
            )
        logger.info(f"Report delivered to {self.url}")


class CompositeReportSink:
    """Delivers to each sink in order; stops at the first failure."""

    def __init__(self, sinks: list[ReportSink]):
        self.sinks = list(sinks)

    async def deliver(self, report: RunReport) -> None:
        for sink in self.sinks:
            await sink.deliver(report)
