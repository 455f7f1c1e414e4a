"""Rackdog API Mock for Integration Testing.

This module provides an in-memory implementation of the Rackdog REST API
that enables integration testing without network access.

Key Features:
- In-memory server inventory and ordering catalog
- Per-plan RAID support for the allocation precondition
- Out-of-band modification and deletion of servers
- Error injection per route
- Recording of every request for call-order assertions

Usage:
    from rackdog_mock import MockRackdogContext

    with MockRackdogContext() as ctx:
        controller = ServerController(ctx.provider)
        record = controller.create(spec)

        ctx.state.modify(record.id, hostname="renamed")
"""

from .api import API_KEY, InjectedError, MockRackdogAPI, RecordedCall
from .context import MOCK_ENDPOINT, MockRackdogContext
from .state import MockCatalog, MockRackdogState, MockServer

__all__ = [
    "API_KEY",
    "MOCK_ENDPOINT",
    "InjectedError",
    "MockCatalog",
    "MockRackdogAPI",
    "MockRackdogContext",
    "MockRackdogState",
    "MockServer",
    "RecordedCall",
]
