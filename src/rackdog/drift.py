"""Drift classification between the recorded and the observed server.

DESIGN PHILOSOPHY:
- Replace-only fields (hostname, plan, location, OS, RAID) never change in
  place. A difference means someone altered the server outside this tool,
  so the read fails and a human reconciles.
- IP address and power status are absorbed from the remote side without
  comparison.
- A vanished server is the only case decided by ReconciliationPolicy.

Checks run in a fixed order and the first failing one is reported.
Simultaneous drifts are not aggregated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from .config import RackdogError
from .models import Server, ServerRecord
from .policy import ReconciliationPolicy

RECONCILE_HINT = (
    "This likely happened outside this tool (portal/api). Please reconcile: "
    "either update your spec to match, import the correct server, or replace this server."
)


class DriftVerdict(str, Enum):
    """Outcome of comparing a record with a fresh snapshot."""

    CLEAN = "clean"
    FATAL = "fatal"
    FORGET = "forget"


@dataclass(frozen=True)
class DriftResult:
    """Classification result.

    Attributes:
        verdict: What the controller must do with the record.
        field: Name of the drifted field for FATAL; None when the server
            vanished.
        expected: Recorded value of the drifted field.
        actual: Remote value of the drifted field.
    """

    verdict: DriftVerdict
    field: str | None = None
    expected: Any = None
    actual: Any = None

    @property
    def is_clean(self) -> bool:
        return self.verdict == DriftVerdict.CLEAN

    @property
    def reason(self) -> str:
        if self.verdict == DriftVerdict.FATAL and self.field is None:
            return "vanished"
        return self.field or self.verdict.value


CLEAN = DriftResult(DriftVerdict.CLEAN)


class DriftError(RackdogError):
    """A replace-only field diverged from the recorded value."""

    def __init__(self, server_id: str, result: DriftResult) -> None:
        self.server_id = server_id
        self.result = result
        super().__init__(
            f"Out-of-band change detected ({result.field}) on server {server_id}: "
            f"remote value is {result.actual!r} but state expected {result.expected!r}. "
            f"{RECONCILE_HINT}"
        )

    @property
    def field(self) -> str | None:
        return self.result.field


def _fatal(field: str, expected: Any, actual: Any) -> DriftResult:
    return DriftResult(DriftVerdict.FATAL, field=field, expected=expected, actual=actual)


def classify_drift(
    record: ServerRecord,
    snapshot: Server | None,
    policy: ReconciliationPolicy,
) -> DriftResult:
    """Classify divergence between a record and a fresh snapshot.

    Args:
        record: Last known state.
        snapshot: Fresh remote view, or None if the server vanished (404).
        policy: Decides what a vanished server means.

    Returns:
        DriftResult with verdict CLEAN, FATAL or FORGET.
    """
    if snapshot is None:
        if policy.recreate_on_missing:
            return DriftResult(DriftVerdict.FORGET)
        return DriftResult(DriftVerdict.FATAL)

    if (
        record.hostname is not None
        and snapshot.hostname is not None
        and record.hostname != snapshot.hostname
    ):
        return _fatal("hostname", record.hostname, snapshot.hostname)

    # Zero means "not reported" on the remote side and "unknown" locally
    if snapshot.plan.id != 0 and record.plan_id != 0 and record.plan_id != snapshot.plan.id:
        return _fatal("plan_id", record.plan_id, snapshot.plan.id)

    if (
        snapshot.location.id != 0
        and record.location_id != 0
        and record.location_id != snapshot.location.id
    ):
        return _fatal("location_id", record.location_id, snapshot.location.id)

    if (
        snapshot.server_os is not None
        and record.os_id != 0
        and record.os_id != snapshot.server_os.id
    ):
        return _fatal("os_id", record.os_id, snapshot.server_os.id)

    if snapshot.raid is not None and record.raid is not None and record.raid != snapshot.raid:
        return _fatal("raid", record.raid, snapshot.raid)

    return CLEAN


def absorb_snapshot(record: ServerRecord, snapshot: Server) -> ServerRecord:
    """Promote absorb-only fields from a clean snapshot into a new record.

    IP address is always taken from the snapshot. Status is taken whenever
    the snapshot reports one. Hostname is only filled in when the record
    had none; once set it never changes.
    """
    updates: dict[str, Any] = {"ip_address": snapshot.ip_address}
    if snapshot.power_status is not None:
        updates["status"] = snapshot.power_status
    if record.hostname is None and snapshot.hostname is not None:
        updates["hostname"] = snapshot.hostname
    return record.model_copy(update=updates)
