"""Pytest configuration and fixtures."""

import os
import sys
from collections.abc import Generator
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for rackdog_mock imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))

from rackdog_mock import MockRackdogContext  # noqa: E402

from rackdog.models import ServerRecord, ServerSpec  # noqa: E402


@pytest.fixture(autouse=True)
def clean_rackdog_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host RACKDOG_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("RACKDOG_"):
            monkeypatch.delenv(key)


@pytest.fixture
def mock_rackdog() -> Generator[MockRackdogContext, None, None]:
    """Mock API with recreate_on_missing disabled."""
    with MockRackdogContext() as ctx:
        yield ctx


@pytest.fixture
def spec() -> ServerSpec:
    return ServerSpec(plan_id=10, location_id=1, os_id=62, hostname="web-1")


@pytest.fixture
def record() -> ServerRecord:
    return ServerRecord(
        id="server-123",
        plan_id=10,
        location_id=1,
        os_id=62,
        hostname="web-1",
        ip_address="10.0.0.1",
        status="ON",
    )
