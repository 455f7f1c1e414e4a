"""Server spec loading with validation.

SECURITY: File reads enforce a size limit. Input validation is performed
at the boundary through the ServerSpec model.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from .config import MAX_SPEC_FILE_SIZE_BYTES, RackdogError
from .models import ServerSpec

logger = logging.getLogger(__name__)

SPEC_KIND = "RackdogServer"


class SpecLoadError(RackdogError):
    """Raised when spec loading or validation fails."""

    pass


def format_validation_error(e: ValidationError) -> str:
    """One "  - field: message" line per pydantic error."""
    errors = []
    for error in e.errors():
        loc = ".".join(str(x) for x in error["loc"])
        errors.append(f"  - {loc}: {error['msg']}")
    return "\n".join(errors)


def load_spec(spec_path: Path) -> ServerSpec:
    """Load and validate a server spec from YAML.

    Both a flat mapping and a Kubernetes-style wrapper are accepted:

        apiVersion: rackdog/v1
        kind: RackdogServer
        metadata: {name: web-1}
        spec:
          planId: 10
          locationId: 1
          osId: 62

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Failed to stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes: {spec_path}"
        )

    try:
        content = spec_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SpecLoadError(f"Failed to read spec file {spec_path}: {e}") from e

    try:
        raw_data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e

    if not isinstance(raw_data, dict):
        raise SpecLoadError(f"Spec file must contain a YAML mapping: {spec_path}")

    if "apiVersion" in raw_data and "spec" in raw_data:
        kind = raw_data.get("kind")
        if kind is not None and kind != SPEC_KIND:
            raise SpecLoadError(f"Unsupported kind '{kind}' in {spec_path}, expected {SPEC_KIND}")
        spec_data = raw_data.get("spec", {})
        if not isinstance(spec_data, dict):
            raise SpecLoadError(f"Spec section must be a mapping: {spec_path}")
    else:
        spec_data = raw_data

    try:
        spec = ServerSpec.model_validate(spec_data)
    except ValidationError as e:
        raise SpecLoadError(
            f"Validation failed for {spec_path}:\n{format_validation_error(e)}"
        ) from e

    logger.info("Loaded server spec from %s", spec_path)
    return spec
