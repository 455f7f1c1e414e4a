"""RAID precondition check performed before allocating a server."""

from __future__ import annotations

import logging

from .client import CallContext, RackdogClient, TransportError
from .config import ConfigurationError, RackdogError

logger = logging.getLogger(__name__)

RAID_NOT_SUPPORTED_MESSAGE = (
    "Selected RAID level is not available for the chosen plan. "
    "Choose a supported RAID or omit it."
)


class RaidNotSupportedError(ConfigurationError):
    """The service does not offer the requested RAID level for the plan."""

    def __init__(self, raid: int, plan_id: int) -> None:
        self.raid = raid
        self.plan_id = plan_id
        super().__init__(
            f"Invalid RAID for plan (raid={raid}, plan_id={plan_id}): "
            f"{RAID_NOT_SUPPORTED_MESSAGE}"
        )


class RaidValidationError(RackdogError):
    """The RAID check itself could not be performed."""

    pass


def validate_raid(
    client: RackdogClient,
    raid: int | None,
    plan_id: int,
    *,
    ctx: CallContext | None = None,
) -> None:
    """Confirm a RAID level is offered for a plan.

    No remote call is made when `raid` is None.

    Raises:
        RaidNotSupportedError: If the service rejects the combination.
        RaidValidationError: If the check fails in transport.
    """
    if raid is None:
        return

    try:
        accepted = client.check_raid(raid, plan_id, ctx=ctx)
    except TransportError as e:
        logger.error(
            "RAID validation failed",
            extra={"raid": raid, "plan_id": plan_id, "error": str(e)},
        )
        raise RaidValidationError(f"RAID validation failed: {e}") from e

    if not accepted:
        raise RaidNotSupportedError(raid, plan_id)
