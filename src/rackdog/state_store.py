"""Local state file holding the authoritative record of one server.

The file is JSON:

    {"version": 1, "server": {"id": "...", "plan_id": 10, ...}}

"server" is null once the server is absent. Writes go to a temporary file
in the same directory followed by os.replace, so a crash never leaves a
truncated state file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import MAX_STATE_FILE_SIZE_BYTES, RackdogError
from .models import ServerRecord
from .spec_loader import format_validation_error

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class StateError(RackdogError):
    """Raised when the state file cannot be read or written."""

    pass


class StateStore:
    """Load and save the record of one managed server.

    Args:
        path: Location of the JSON state file. Missing file means absent.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> ServerRecord | None:
        """Read the stored record.

        Returns:
            The record, or None if no server is recorded.

        Raises:
            StateError: If the file is unreadable, too large or invalid.
        """
        if not self._path.exists():
            return None

        try:
            size = self._path.stat().st_size
        except OSError as e:
            raise StateError(f"Failed to stat state file {self._path}: {e}") from e

        if size > MAX_STATE_FILE_SIZE_BYTES:
            raise StateError(
                f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: "
                f"{self._path}"
            )

        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StateError(f"Failed to read state file {self._path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StateError(f"Invalid JSON in state file {self._path}: {e}") from e

        if not isinstance(data, dict):
            raise StateError(f"State file must contain a JSON object: {self._path}")

        version = data.get("version")
        if version != STATE_VERSION:
            raise StateError(
                f"Unsupported state version {version!r} in {self._path}, "
                f"expected {STATE_VERSION}"
            )

        server = data.get("server")
        if server is None:
            return None

        try:
            return ServerRecord.model_validate(server)
        except ValidationError as e:
            raise StateError(
                f"Invalid server record in {self._path}:\n{format_validation_error(e)}"
            ) from e

    def save(self, record: ServerRecord | None) -> None:
        """Atomically replace the stored record. None records an absent server."""
        payload: dict[str, Any] = {
            "version": STATE_VERSION,
            "server": record.model_dump() if record is not None else None,
        }

        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=directory, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(payload, f, indent=2, sort_keys=True)
                    f.write("\n")
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StateError(f"Failed to write state file {self._path}: {e}") from e

        logger.debug(
            "State saved",
            extra={"path": str(self._path), "server_id": record.id if record else None},
        )
