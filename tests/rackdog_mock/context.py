"""Mock Rackdog context for integration testing.

Wires MockRackdogAPI into a real RackdogClient through httpx.MockTransport,
so the code under test runs its full HTTP path without network access.
"""

from __future__ import annotations

from typing import Any

from rackdog.config import ProviderConfig
from rackdog.policy import ReconciliationPolicy
from rackdog.provider import ProviderContext, configure

from .api import API_KEY, MockRackdogAPI
from .state import MockRackdogState, MockServer

MOCK_ENDPOINT = "https://rackdog.test"


class MockRackdogContext:
    """Context manager for Rackdog API mocking in integration tests.

    Usage:
        with MockRackdogContext(recreate_on_missing=True) as ctx:
            controller = ServerController(ctx.provider)
            record = controller.create(spec)

            assert ctx.api.allocate_calls
            assert ctx.state.server_count == 1
    """

    def __init__(
        self,
        *,
        recreate_on_missing: bool = False,
        initial_servers: list[dict[str, Any]] | None = None,
    ) -> None:
        self._recreate_on_missing = recreate_on_missing
        self._initial_servers = initial_servers or []

        self._state: MockRackdogState | None = None
        self._api: MockRackdogAPI | None = None
        self._provider: ProviderContext | None = None

    @property
    def state(self) -> MockRackdogState:
        if self._state is None:
            raise RuntimeError("MockRackdogContext must be used as a context manager")
        return self._state

    @property
    def api(self) -> MockRackdogAPI:
        if self._api is None:
            raise RuntimeError("MockRackdogContext must be used as a context manager")
        return self._api

    @property
    def provider(self) -> ProviderContext:
        if self._provider is None:
            raise RuntimeError("MockRackdogContext must be used as a context manager")
        return self._provider

    @property
    def config(self) -> ProviderConfig:
        return ProviderConfig(
            api_key=API_KEY,
            endpoint=MOCK_ENDPOINT,
            policy=ReconciliationPolicy(recreate_on_missing=self._recreate_on_missing),
        )

    def __enter__(self) -> MockRackdogContext:
        self._state = MockRackdogState()
        for server_data in self._initial_servers:
            self._state.put(MockServer(**server_data))

        self._api = MockRackdogAPI(self._state)
        self._provider = configure(self.config, transport=self._api.transport())
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._provider is not None:
            self._provider.close()
