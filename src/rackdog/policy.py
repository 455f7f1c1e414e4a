"""Reconciliation policy for servers that vanished outside this tool.

A read that returns 404 is the only drift whose disposition is
configurable. Every other divergence is fatal regardless of policy.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

RECREATE_ON_MISSING_ENV = "RACKDOG_RECREATE_ON_MISSING"

_TRUE_VALUES = ("1", "true")


def parse_bool(value: str) -> bool:
    """Parse an environment flag; only "1" and "true" (any case) are true."""
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class ReconciliationPolicy:
    """How a vanished server is handled on read.

    Attributes:
        recreate_on_missing: If True, a server missing on read is forgotten
            so the next apply recreates it. If False, the read fails and the
            operator has to reconcile by hand.
    """

    recreate_on_missing: bool = False

    @classmethod
    def resolve(cls, explicit: bool | None = None) -> ReconciliationPolicy:
        """Resolve the policy: explicit value, then environment, then False."""
        if explicit is not None:
            return cls(recreate_on_missing=explicit)

        raw = os.environ.get(RECREATE_ON_MISSING_ENV)
        if raw:
            return cls(recreate_on_missing=parse_bool(raw))

        return cls()

    def describe(self) -> str:
        """Short human-readable summary for logs and CLI output."""
        if self.recreate_on_missing:
            return "forget vanished servers and allow recreation"
        return "fail on vanished servers"
