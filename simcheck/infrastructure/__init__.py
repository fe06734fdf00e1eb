"""
External collaborators for simcheck.

Thin async wrappers around the simulation server CLI, the snapshot feed, and
report delivery.
"""

from simcheck.infrastructure.feed import EventFeed, HttpEventFeed, QueueEventFeed
from simcheck.infrastructure.report import (
    CompositeReportSink,
    ConsoleReportSink,
    HttpReportSink,
    ReportDeliveryError,
    ReportSink,
)
from simcheck.infrastructure.server_client import (
    CommandError,
    ProvisioningError,
    ServerClient,
    ServerUnavailableError,
)

__all__ = [
    "CommandError",
    "CompositeReportSink",
    "ConsoleReportSink",
    "EventFeed",
    "HttpEventFeed",
    "HttpReportSink",
    "ProvisioningError",
    "QueueEventFeed",
    "ReportDeliveryError",
    "ReportSink",
    "ServerClient",
    "ServerUnavailableError",
]
