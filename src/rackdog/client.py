"""Rackdog REST API client.

Thin synchronous wrapper over httpx. Every response arrives in a
{success, data, message} envelope; non-2xx responses become HTTPError
carrying the status code and raw body so callers can tell a vanished
server (404) from any other failure.

Calls are never retried here. Allocation is not idempotent, and the
reconciliation engine reports every failure verbatim to the operator.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, TypeVar
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from .config import DEFAULT_TIMEOUT_SECONDS, ProviderConfig, RackdogError
from .models import (
    CreateServerRequest,
    Envelope,
    Plan,
    Server,
    ServerListItem,
    ServerOS,
)

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-rd-key"
DEFAULT_USER_AGENT = "rackdog-reconciler/0.1.0"

T = TypeVar("T")


class TransportError(RackdogError):
    """Raised when a call to the Rackdog API fails."""

    pass


class HTTPError(TransportError):
    """Non-2xx response from the Rackdog API."""

    def __init__(self, status: int, method: str, url: str, body: str) -> None:
        self.status = status
        self.method = method
        self.url = url
        self.body = body
        super().__init__(f"{method} {url} failed: {status} - {body}")

    @property
    def is_not_found(self) -> bool:
        """True for 404, the only status the engine treats specially."""
        return self.status == httpx.codes.NOT_FOUND


class APIError(TransportError):
    """2xx response whose envelope reports success=false."""

    pass


class OperationCancelledError(TransportError):
    """The caller cancelled the operation or its deadline passed."""

    pass


@dataclass
class CallContext:
    """Cancellation and deadline carried through one lifecycle call.

    The controller hands the same context to every client call it makes, so
    a caller that cancels or runs out of time stops the whole operation.

    Attributes:
        deadline: Absolute time.monotonic() value after which no new request
            is started. None means no deadline.
        cancelled: Event the caller sets to abort the operation.
    """

    deadline: float | None = None
    cancelled: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float) -> CallContext:
        """Create a context whose deadline is `seconds` from now."""
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self.cancelled.set()

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_done(self) -> None:
        """Raise OperationCancelledError if cancelled or past the deadline.

        Raises:
            OperationCancelledError: If no further work may be done.
        """
        if self.cancelled.is_set():
            raise OperationCancelledError("Operation cancelled by caller")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise OperationCancelledError("Operation deadline exceeded")


class RackdogClient:
    """Client for the Rackdog provisioning API.

    Args:
        base_url: API base URL; trailing slashes are trimmed.
        api_key: Key sent in the x-rd-key header.
        timeout: Default per-request timeout in seconds.
        transport: Optional httpx transport, used by tests to mount an
            in-memory API.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: httpx.BaseTransport | None = None,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                API_KEY_HEADER: api_key,
                "Content-Type": "application/json",
                "User-Agent": user_agent,
            },
        )

    @classmethod
    def from_config(
        cls,
        config: ProviderConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> RackdogClient:
        """Build a client from resolved provider configuration."""
        return cls(
            config.base_url,
            config.api_key,
            timeout=config.timeout_seconds,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> RackdogClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        ctx: CallContext | None = None,
    ) -> Any:
        """Issue one request and return the decoded JSON body.

        Raises:
            OperationCancelledError: If ctx is cancelled or expired.
            HTTPError: On any non-2xx response.
            TransportError: On network failure or an undecodable body.
        """
        timeout = self._timeout
        if ctx is not None:
            ctx.raise_if_done()
            remaining = ctx.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)

        url = f"{self._base_url}{path}"
        logger.debug("Rackdog API request", extra={"method": method, "path": path})

        try:
            resp = self._http.request(method, url, json=json, params=params, timeout=timeout)
        except httpx.TimeoutException as e:
            raise TransportError(f"{method} {url} timed out after {timeout:g}s") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if not resp.is_success:
            raise HTTPError(resp.status_code, method, str(resp.request.url), resp.text)

        if not resp.content:
            return None

        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(f"{method} {url} returned invalid JSON: {e}") from e

    @staticmethod
    def _decode(payload: Any, model: type[Envelope[T]], what: str) -> Envelope[T]:
        try:
            return model.model_validate(payload if payload is not None else {})
        except ValidationError as e:
            raise TransportError(f"Unexpected {what} response: {e}") from e

    def _unwrap(self, payload: Any, model: type[Envelope[T]], what: str) -> T:
        env = self._decode(payload, model, what)
        if not env.success:
            raise APIError(env.message or f"{what} request was not successful")
        if env.data is None:
            raise APIError(f"API returned no error but also no {what}")
        return env.data

    # -------------------------------------------------------------------------
    # Servers
    # -------------------------------------------------------------------------

    def create_server(
        self, request: CreateServerRequest, *, ctx: CallContext | None = None
    ) -> ServerListItem:
        """Allocate a new server."""
        payload = self._request(
            "POST", "/v1/ordering/allocate", json=request.to_payload(), ctx=ctx
        )
        return self._unwrap(payload, Envelope[ServerListItem], "server")

    def get_server(self, server_id: str, *, ctx: CallContext | None = None) -> Server:
        """Fetch the full view of one server."""
        payload = self._request("GET", f"/v1/servers/{_escape(server_id)}", ctx=ctx)
        return self._unwrap(payload, Envelope[Server], "server")

    def delete_server(self, server_id: str, *, ctx: CallContext | None = None) -> None:
        """Destroy a server. The response body is ignored."""
        self._request("DELETE", f"/v1/servers/{_escape(server_id)}/destroy", ctx=ctx)

    # -------------------------------------------------------------------------
    # Ordering catalog
    # -------------------------------------------------------------------------

    def check_raid(self, raid: int, plan_id: int, *, ctx: CallContext | None = None) -> bool:
        """Check whether a RAID level is offered for a plan.

        Returns:
            True if the combination is accepted, False if the service
            rejects it (success=false in the envelope).

        Raises:
            TransportError: If the check itself could not be performed.
        """
        payload = self._request(
            "GET", f"/v1/ordering/plans/{plan_id}/raid/{raid}/check", ctx=ctx
        )
        env = self._decode(payload, Envelope[Any], "RAID check")
        if not env.success:
            logger.info(
                "RAID level rejected for plan",
                extra={"raid": raid, "plan_id": plan_id, "reason": env.message},
            )
        return env.success

    def list_plans(
        self, location: str | None = None, *, ctx: CallContext | None = None
    ) -> list[Plan]:
        """List all hardware plans, optionally filtered by location keyword."""
        params = {"showAll": "true"}
        if location:
            params["location"] = location
        payload = self._request("GET", "/v1/ordering/plans", params=params, ctx=ctx)
        return self._unwrap(payload, Envelope[list[Plan]], "plans")

    def list_operating_systems(self, *, ctx: CallContext | None = None) -> list[ServerOS]:
        """List operating systems that can be installed."""
        payload = self._request("GET", "/v1/ordering/os", ctx=ctx)
        return self._unwrap(payload, Envelope[list[ServerOS]], "operating systems")


def _escape(segment: str) -> str:
    return quote(segment, safe="")

