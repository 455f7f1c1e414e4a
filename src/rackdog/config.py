"""Provider configuration with validation.

Configuration is resolved once, before any lifecycle operation runs:
explicit values win, then environment variables, then defaults. Invalid
configurations raise ConfigurationError immediately rather than failing
on the first API call.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field

from .policy import RECREATE_ON_MISSING_ENV, ReconciliationPolicy


class RackdogError(Exception):
    """Base class for all errors raised by this package."""

    pass


class ConfigurationError(RackdogError):
    """Raised when configuration validation fails.

    Always user-actionable and always raised before any mutating call.
    """

    pass


# Configuration constants with documented bounds
DEFAULT_ENDPOINT = "https://metal.rackdog.com"

DEFAULT_TIMEOUT_SECONDS = 30.0
MIN_TIMEOUT_SECONDS = 1.0
MAX_TIMEOUT_SECONDS = 600.0

# File size limits for local spec and state files
MAX_SPEC_FILE_SIZE_BYTES = 256 * 1024
MAX_STATE_FILE_SIZE_BYTES = 1024 * 1024

# Environment variables
ENV_ENDPOINT = "RACKDOG_ENDPOINT"
ENV_API_KEY = "RACKDOG_API_KEY"
ENV_RECREATE_ON_MISSING = RECREATE_ON_MISSING_ENV
ENV_TIMEOUT = "RACKDOG_TIMEOUT"

VALID_ENDPOINT_PATTERN = r"^https?://[^\s/]+(/[^\s]*)?$"


@dataclass(frozen=True)
class ProviderConfig:
    """Resolved provider configuration.

    All fields are validated at construction time. The API key is excluded
    from repr so it never ends up in logs or tracebacks.
    """

    api_key: str = field(repr=False)
    endpoint: str = DEFAULT_ENDPOINT
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    policy: ReconciliationPolicy = field(default_factory=ReconciliationPolicy)

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if not self.api_key:
            errors.append(f"No api_key or {ENV_API_KEY} found")

        if not self.endpoint:
            errors.append(f"{ENV_ENDPOINT} must not be empty")
        elif not re.match(VALID_ENDPOINT_PATTERN, self.endpoint):
            errors.append(f"{ENV_ENDPOINT} must be an http(s) URL: {self.endpoint}")

        if not (MIN_TIMEOUT_SECONDS <= self.timeout_seconds <= MAX_TIMEOUT_SECONDS):
            errors.append(
                f"{ENV_TIMEOUT} must be between {MIN_TIMEOUT_SECONDS:g} "
                f"and {MAX_TIMEOUT_SECONDS:g} seconds"
            )

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def base_url(self) -> str:
        """Endpoint without trailing slashes."""
        return self.endpoint.rstrip("/")

    @classmethod
    def from_env(
        cls,
        *,
        endpoint: str | None = None,
        api_key: str | None = None,
        recreate_on_missing: bool | None = None,
        timeout_seconds: float | None = None,
    ) -> ProviderConfig:
        """Resolve configuration from explicit values and the environment.

        Environment Variables:
            RACKDOG_ENDPOINT: API base URL (default: https://metal.rackdog.com)
            RACKDOG_API_KEY: API key sent as the x-rd-key header (required)
            RACKDOG_RECREATE_ON_MISSING: "1"/"true" to forget servers that
                vanished remotely so they can be recreated (default: false)
            RACKDOG_TIMEOUT: Per-request timeout in seconds (default: 30)
        """

        def get_string(value: str | None, key: str, default: str) -> str:
            if value is not None:
                return value
            return os.environ.get(key) or default

        def get_float(value: float | None, key: str, default: float) -> float:
            if value is not None:
                return value
            raw = os.environ.get(key)
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {raw}") from e

        return cls(
            api_key=get_string(api_key, ENV_API_KEY, ""),
            endpoint=get_string(endpoint, ENV_ENDPOINT, DEFAULT_ENDPOINT),
            timeout_seconds=get_float(timeout_seconds, ENV_TIMEOUT, DEFAULT_TIMEOUT_SECONDS),
            policy=ReconciliationPolicy.resolve(recreate_on_missing),
        )
