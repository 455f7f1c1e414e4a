"""Provider context shared by the server controller and catalog queries.

The context is built once by configure() and passed explicitly to every
consumer. Nothing here is module-level state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from .client import RackdogClient
from .config import ProviderConfig
from .policy import ReconciliationPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderContext:
    """Client handle and the configuration it was built from, immutable after configure()."""

    client: RackdogClient
    config: ProviderConfig

    @property
    def policy(self) -> ReconciliationPolicy:
        return self.config.policy

    def close(self) -> None:
        self.client.close()


def configure(
    config: ProviderConfig,
    *,
    transport: httpx.BaseTransport | None = None,
    current: ProviderContext | None = None,
) -> ProviderContext:
    """Build the provider context from resolved configuration.

    Idempotent: if `current` was built from an equal configuration (API key
    and timeout included) it is returned unchanged. Otherwise a new context
    is built and the client of `current` is closed.

    Args:
        config: Validated provider configuration.
        transport: Optional httpx transport for the API client.
        current: Previously configured context, if any.

    Returns:
        Context to hand to ServerController and catalog queries.
    """
    if current is not None and current.config == config:
        logger.debug("Rackdog provider already configured", extra={"endpoint": config.base_url})
        return current

    context = ProviderContext(
        client=RackdogClient.from_config(config, transport=transport),
        config=config,
    )
    if current is not None:
        current.close()

    logger.info(
        "Rackdog provider configured",
        extra={
            "endpoint": config.base_url,
            "recreate_on_missing": config.policy.recreate_on_missing,
            "policy": config.policy.describe(),
        },
    )
    return context
