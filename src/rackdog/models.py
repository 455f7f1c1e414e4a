"""Pydantic models for the Rackdog API and for local server state.

These models provide:
1. Type-safe parsing of API envelopes (camelCase on the wire)
2. Validation of desired server specs at the boundary
3. The immutable authoritative record persisted between runs
"""

from __future__ import annotations

from typing import Annotated, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

T = TypeVar("T")

# =============================================================================
# API Models
# =============================================================================


class ApiModel(BaseModel):
    """Base for API payloads: camelCase aliases, unknown fields ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ServerOS(ApiModel):
    """Operating system as reported by the catalog and on servers."""

    id: int
    name: str = ""


class ServerPlan(ApiModel):
    """Hardware plan embedded in a server view."""

    id: int = 0
    name: str = ""
    ram_gb: int = Field(0, alias="ram")
    storage: int = 0
    cpu_name: str = Field("", alias="cpuName")
    cores: int = 0


class ServerLocation(ApiModel):
    """Datacenter location embedded in a server view."""

    id: int = 0
    name: str = ""
    keyword: str = ""
    country: str = ""


class Server(ApiModel):
    """Full server view returned by GET /v1/servers/{id}.

    This is the remote snapshot the drift classifier compares against.
    """

    id: str = ""
    plan: ServerPlan = Field(default_factory=ServerPlan)
    location: ServerLocation = Field(default_factory=ServerLocation)
    server_os: ServerOS | None = Field(None, alias="serverOS")
    raid: int | None = None
    hostname: str | None = None
    ip_address: str = Field("", alias="ipAddress")
    power_status: str | None = Field(None, alias="devicePowerStatus")
    monthly_price: str | None = Field(None, alias="monthlyPrice")


class ServerListItem(ApiModel):
    """Short server view returned by the allocation endpoint."""

    id: str = ""
    hostname: str | None = None
    ip_address: str = Field("", alias="ipAddress")
    power_status: str | None = Field(None, alias="powerStatus")


class CreateServerRequest(ApiModel):
    """Body of POST /v1/ordering/allocate."""

    plan_id: int = Field(alias="planId")
    location_id: int = Field(alias="locationId")
    os_id: int = Field(alias="osId")
    raid: int | None = None
    hostname: str | None = None

    def to_payload(self) -> dict[str, int | str]:
        """Serialize with wire names, omitting unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class CPU(ApiModel):
    """CPU description of a catalog plan."""

    name: str = ""
    cores: int = 0
    speed_ghz: float = Field(0.0, alias="speedGhz")


class PlanLocation(ApiModel):
    """Location where a catalog plan is offered, with its price."""

    id: int
    name: str = ""
    keyword: str = ""
    monthly_price: int = Field(0, alias="monthlyPrice")


class Plan(ApiModel):
    """Hardware plan from the ordering catalog."""

    id: int
    name: str = ""
    cpu: CPU = Field(default_factory=CPU)
    locations: list[PlanLocation] = Field(default_factory=list)
    ram_gb: int = Field(0, alias="ram")
    storage_gb: int = Field(0, alias="storageGb")


class Envelope(ApiModel, Generic[T]):
    """Standard {success, data, message} response wrapper."""

    success: bool = False
    data: T | None = None
    message: str = ""
    total_count: int | None = Field(None, alias="totalCount")


# =============================================================================
# Desired State
# =============================================================================


class ServerSpec(BaseModel):
    """Desired server declared by the user.

    Every field is replace-only: changing any of them means destroying the
    server and allocating a new one.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    plan_id: Annotated[int, Field(gt=0, alias="planId")]
    location_id: Annotated[int, Field(gt=0, alias="locationId")]
    os_id: Annotated[int, Field(gt=0, alias="osId")]
    raid: Annotated[int | None, Field(ge=0)] = None
    hostname: str | None = None

    @field_validator("hostname")
    @classmethod
    def validate_hostname(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("hostname must not be empty; omit it to let Rackdog assign one")
        if len(v) > 253:
            raise ValueError("hostname must be at most 253 characters")
        return v

    def to_request(self) -> CreateServerRequest:
        """Build the allocation request for this spec."""
        return CreateServerRequest(
            plan_id=self.plan_id,
            location_id=self.location_id,
            os_id=self.os_id,
            raid=self.raid,
            hostname=self.hostname,
        )


# =============================================================================
# Authoritative Record
# =============================================================================


class ServerRecord(BaseModel):
    """Last known remote state of one managed server.

    Frozen: every lifecycle step produces a new record via model_copy, so a
    failed step can never leave a half-updated record behind.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: Annotated[str, Field(min_length=1)]
    plan_id: int
    location_id: int
    os_id: int
    raid: int | None = None
    hostname: str | None = None
    ip_address: str = ""
    status: str | None = None
