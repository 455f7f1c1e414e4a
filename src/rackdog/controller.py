"""Lifecycle controller for one Rackdog server.

State machine:
    absent -> creating -> present -> (reading <-> present) -> deleting -> absent

There is no updating state. Every user-settable field is replace-only, so a
change is carried out as delete followed by create. update() exists only to
emit an advisory.

The controller never retries and never records anything it has not
confirmed: a record is produced only after the remote call returned
successfully and the caller's context was still live.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .client import CallContext, HTTPError, OperationCancelledError, TransportError
from .config import ConfigurationError, RackdogError
from .drift import DriftError, DriftVerdict, absorb_snapshot, classify_drift
from .models import ServerRecord, ServerSpec
from .provider import ProviderContext
from .validator import validate_raid

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    """Where the managed server is in its lifecycle."""

    ABSENT = "absent"
    CREATING = "creating"
    PRESENT = "present"
    READING = "reading"
    DELETING = "deleting"


class LifecycleOperation(str, Enum):
    """Operations that reach the remote API. Update is deliberately absent."""

    CREATE = "create"
    READ = "read"
    DELETE = "delete"


class FieldPolicy(str, Enum):
    """How a change to a record field is carried out."""

    COMPUTED = "computed"  # set by the service, never by the user
    REPLACE_ON_CHANGE = "replace_on_change"


FIELD_POLICIES: dict[str, FieldPolicy] = {
    "id": FieldPolicy.COMPUTED,
    "plan_id": FieldPolicy.REPLACE_ON_CHANGE,
    "location_id": FieldPolicy.REPLACE_ON_CHANGE,
    "os_id": FieldPolicy.REPLACE_ON_CHANGE,
    "raid": FieldPolicy.REPLACE_ON_CHANGE,
    "hostname": FieldPolicy.REPLACE_ON_CHANGE,
    "ip_address": FieldPolicy.COMPUTED,
    "status": FieldPolicy.COMPUTED,
}

UPDATE_ADVISORY_SUMMARY = "No update implemented"
UPDATE_ADVISORY_DETAIL = (
    "Rackdog servers cannot be updated in place. Changing plan, location, OS, "
    "RAID or hostname replaces the server."
)


class ProviderNotConfiguredError(ConfigurationError):
    """A lifecycle operation ran before the provider was configured."""

    pass


class CreateError(RackdogError):
    """Allocation failed; no record was created."""

    pass


class ReadError(RackdogError):
    """Reading the server failed for a reason other than 404."""

    pass


class DeleteError(RackdogError):
    """Destroying the server failed; the record is unchanged."""

    pass


class ResourceVanishedError(RackdogError):
    """The server is gone remotely and the policy forbids forgetting it."""

    def __init__(self, server_id: str) -> None:
        self.server_id = server_id
        super().__init__(
            f"Server {server_id} deleted outside this tool: it no longer exists (404) "
            "and provider setting `recreate_on_missing` is false. Enable it in the "
            "provider or import an existing server by ID."
        )


@dataclass(frozen=True)
class Advisory:
    """Non-fatal notice returned to the caller."""

    summary: str
    detail: str


class ServerController:
    """Create, read and delete one Rackdog server.

    Args:
        context: Provider context from configure(). None leaves the
            controller unconfigured; every operation then raises
            ProviderNotConfiguredError.
    """

    def __init__(self, context: ProviderContext | None) -> None:
        self._context = context
        self._state = LifecycleState.ABSENT

    @property
    def state(self) -> LifecycleState:
        return self._state

    def _require_context(self) -> ProviderContext:
        if self._context is None:
            raise ProviderNotConfiguredError("Provider not configured: client was nil")
        return self._context

    def create(self, spec: ServerSpec, *, ctx: CallContext | None = None) -> ServerRecord:
        """Allocate a server for `spec` and seed its record.

        Status is left unset; the allocation endpoint does not report power
        state, and it is filled in by the next read.

        Raises:
            RaidNotSupportedError: If the RAID level is not offered for the plan.
            RaidValidationError: If the RAID check could not be performed.
            CreateError: If allocation failed.
            OperationCancelledError: If ctx was cancelled.
        """
        context = self._require_context()
        ctx = ctx or CallContext()

        self._state = LifecycleState.CREATING
        try:
            validate_raid(context.client, spec.raid, spec.plan_id, ctx=ctx)

            try:
                created = context.client.create_server(spec.to_request(), ctx=ctx)
            except OperationCancelledError:
                raise
            except TransportError as e:
                logger.error(
                    "Create failed",
                    extra={
                        "plan_id": spec.plan_id,
                        "location_id": spec.location_id,
                        "error": str(e),
                    },
                )
                raise CreateError(f"Create failed: {e}") from e

            if not created.id:
                raise CreateError("Create failed: API returned no server ID")

            if ctx.cancelled.is_set():
                logger.warning(
                    "Server allocated after cancellation; not recorded",
                    extra={"server_id": created.id},
                )
                raise OperationCancelledError(
                    f"Operation cancelled after server {created.id} was allocated; "
                    "import it by ID to manage it"
                )
        except Exception:
            self._state = LifecycleState.ABSENT
            raise

        record = ServerRecord(
            id=created.id,
            plan_id=spec.plan_id,
            location_id=spec.location_id,
            os_id=spec.os_id,
            raid=spec.raid,
            hostname=created.hostname if created.hostname is not None else spec.hostname,
            ip_address=created.ip_address,
            status=None,
        )
        self._state = LifecycleState.PRESENT

        logger.info(
            "Server created",
            extra={"server_id": record.id, "ip_address": record.ip_address},
        )
        return record

    def read(self, record: ServerRecord, *, ctx: CallContext | None = None) -> ServerRecord | None:
        """Refresh `record` from the remote server.

        Returns:
            The refreshed record, or None if the server vanished and the
            policy allows forgetting it.

        Raises:
            ResourceVanishedError: If the server is gone and recreate_on_missing
                is false.
            DriftError: If a replace-only field changed remotely.
            ReadError: On any other transport failure.
            OperationCancelledError: If ctx was cancelled.
        """
        context = self._require_context()
        ctx = ctx or CallContext()

        self._state = LifecycleState.READING
        try:
            snapshot = context.client.get_server(record.id, ctx=ctx)
        except OperationCancelledError:
            self._state = LifecycleState.PRESENT
            raise
        except HTTPError as e:
            if not e.is_not_found:
                self._state = LifecycleState.PRESENT
                raise ReadError(f"Read failed: {e}") from e
            snapshot = None
        except TransportError as e:
            self._state = LifecycleState.PRESENT
            raise ReadError(f"Read failed: {e}") from e

        if ctx.cancelled.is_set():
            self._state = LifecycleState.PRESENT
            raise OperationCancelledError("Operation cancelled by caller")

        result = classify_drift(record, snapshot, context.policy)

        if result.verdict == DriftVerdict.FORGET:
            self._state = LifecycleState.ABSENT
            logger.warning(
                "Server vanished remotely; removing it from state so it can be recreated",
                extra={"server_id": record.id},
            )
            return None

        self._state = LifecycleState.PRESENT

        if snapshot is None:
            logger.error("Server deleted outside this tool", extra={"server_id": record.id})
            raise ResourceVanishedError(record.id)

        if result.verdict == DriftVerdict.FATAL:
            logger.error(
                "Out-of-band change detected",
                extra={
                    "server_id": record.id,
                    "field": result.field,
                    "expected": result.expected,
                    "actual": result.actual,
                },
            )
            raise DriftError(record.id, result)

        refreshed = absorb_snapshot(record, snapshot)
        logger.debug(
            "Server refreshed",
            extra={"server_id": refreshed.id, "status": refreshed.status},
        )
        return refreshed

    def delete(self, record: ServerRecord, *, ctx: CallContext | None = None) -> None:
        """Destroy the server. Exactly one delete call, never retried.

        Raises:
            DeleteError: If the delete call failed; the record is still valid.
            OperationCancelledError: If ctx was cancelled before the call.
        """
        context = self._require_context()
        ctx = ctx or CallContext()

        self._state = LifecycleState.DELETING
        try:
            context.client.delete_server(record.id, ctx=ctx)
        except OperationCancelledError:
            self._state = LifecycleState.PRESENT
            raise
        except TransportError as e:
            self._state = LifecycleState.PRESENT
            logger.error("Delete failed", extra={"server_id": record.id, "error": str(e)})
            raise DeleteError(f"Delete failed: {e}") from e

        self._state = LifecycleState.ABSENT
        logger.info("Server deleted", extra={"server_id": record.id})

    def import_server(self, server_id: str, *, ctx: CallContext | None = None) -> ServerRecord:
        """Adopt an existing server by ID and build its record from the remote view.

        Raises:
            ReadError: If the server does not exist or cannot be read.
            OperationCancelledError: If ctx was cancelled.
        """
        context = self._require_context()
        ctx = ctx or CallContext()

        self._state = LifecycleState.READING
        try:
            snapshot = context.client.get_server(server_id, ctx=ctx)
        except OperationCancelledError:
            self._state = LifecycleState.ABSENT
            raise
        except TransportError as e:
            self._state = LifecycleState.ABSENT
            raise ReadError(f"Import failed: {e}") from e

        if ctx.cancelled.is_set():
            self._state = LifecycleState.ABSENT
            raise OperationCancelledError("Operation cancelled by caller")

        record = ServerRecord(
            id=snapshot.id or server_id,
            plan_id=snapshot.plan.id,
            location_id=snapshot.location.id,
            os_id=snapshot.server_os.id if snapshot.server_os is not None else 0,
            raid=snapshot.raid,
            hostname=snapshot.hostname,
            ip_address=snapshot.ip_address,
            status=snapshot.power_status,
        )
        self._state = LifecycleState.PRESENT

        logger.info("Server imported", extra={"server_id": record.id})
        return record

    def update(self, spec: ServerSpec, record: ServerRecord) -> Advisory:
        """In-place update is not supported; returns an advisory and does nothing."""
        logger.warning(
            UPDATE_ADVISORY_SUMMARY,
            extra={"server_id": record.id, "changed_fields": plan_changes(spec, record)},
        )
        return Advisory(UPDATE_ADVISORY_SUMMARY, UPDATE_ADVISORY_DETAIL)


def plan_changes(spec: ServerSpec, record: ServerRecord) -> list[str]:
    """Replace-on-change fields whose desired value differs from the record.

    An unset raid or hostname in the spec leaves that field unmanaged, so the
    value Rackdog picked is not treated as a change.
    """
    changed: list[str] = []
    for name, policy in FIELD_POLICIES.items():
        if policy != FieldPolicy.REPLACE_ON_CHANGE:
            continue
        desired = getattr(spec, name)
        if desired is None:
            continue
        if desired != getattr(record, name):
            changed.append(name)
    return changed
