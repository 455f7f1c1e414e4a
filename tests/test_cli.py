"""End-to-end tests for the rackdog CLI against the mock API."""

from __future__ import annotations

import json
import logging
from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner, Result
from rackdog_mock import API_KEY, MOCK_ENDPOINT, MockRackdogAPI, MockRackdogState

from rackdog.cli import cli
from rackdog.state_store import StateStore

SPEC_YAML = """
apiVersion: rackdog/v1
kind: RackdogServer
spec:
  planId: 10
  locationId: 1
  osId: 62
  hostname: web-1
"""


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Drop the handler bound to the runner's captured stderr."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == "rackdog":
            root.removeHandler(handler)


@pytest.fixture
def api() -> MockRackdogAPI:
    return MockRackdogAPI(MockRackdogState())


@pytest.fixture
def spec_file(tmp_path: Path) -> Path:
    path = tmp_path / "server.yaml"
    path.write_text(SPEC_YAML)
    return path


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "rackdog.state.json"


def invoke(api: MockRackdogAPI, *args: str, env: dict[str, str] | None = None) -> Result:
    run_env = {"RACKDOG_API_KEY": API_KEY}
    run_env.update(env or {})
    return CliRunner().invoke(
        cli,
        ["--endpoint", MOCK_ENDPOINT, *args],
        obj={"transport": api.transport()},
        env=run_env,
    )


def recorded(state_file: Path) -> dict[str, Any] | None:
    return json.loads(state_file.read_text())["server"]


class TestCatalogCommands:
    def test_plans_json(self, api: MockRackdogAPI) -> None:
        result = invoke(api, "plans", "--json")

        assert result.exit_code == 0, result.output
        rows = json.loads(result.stdout)
        assert [r["id"] for r in rows] == [10, 20]

    def test_plans_table(self, api: MockRackdogAPI) -> None:
        result = invoke(api, "plans", "--location", "AMS")

        assert result.exit_code == 0, result.output
        assert "Big Plan" in result.stdout
        assert "Test Plan" not in result.stdout

    def test_os_json(self, api: MockRackdogAPI) -> None:
        result = invoke(api, "os", "--json")

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)[1] == {"id": 63, "name": "Debian 12"}

    def test_missing_api_key(self, api: MockRackdogAPI) -> None:
        result = CliRunner().invoke(
            cli, ["plans"], obj={"transport": api.transport()}, env={"RACKDOG_API_KEY": ""}
        )

        assert result.exit_code == 1
        assert "RACKDOG_API_KEY" in result.output
        assert api.calls == []

    def test_api_failure(self, api: MockRackdogAPI) -> None:
        api.inject_error("GET", "/v1/ordering/os", 500, "down")

        result = invoke(api, "os")

        assert result.exit_code == 1
        assert "Failed to list operating systems" in result.output


class TestApply:
    def test_creates_server(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        result = invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        assert result.exit_code == 0, result.output
        server = recorded(state_file)
        assert server is not None
        assert f"Server {server['id']} created." in result.stdout
        assert server["hostname"] == "web-1"
        assert api.state.server_count == 1

    def test_second_apply_is_no_op(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        result = invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        assert result.exit_code == 0, result.output
        assert "is up to date" in result.stdout
        assert len(api.allocate_calls) == 1
        server = recorded(state_file)
        assert server is not None and server["status"] == "PROVISIONING"

    def test_changed_spec_replaces_server(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        old = recorded(state_file)
        assert old is not None
        spec_file.write_text(SPEC_YAML.replace("osId: 62", "osId: 63"))

        result = invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        assert result.exit_code == 0, result.output
        assert "os_id changed" in result.stdout
        assert len(api.destroy_calls) == 1
        new = recorded(state_file)
        assert new is not None
        assert new["id"] != old["id"]
        assert new["os_id"] == 63

    def test_unsupported_raid(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        spec_file.write_text(SPEC_YAML + "  raid: 5\n")

        result = invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        assert result.exit_code == 1
        assert "Invalid RAID for plan" in result.output
        assert api.allocate_calls == []
        assert not state_file.exists()

    def test_vanished_server_recreated_with_policy(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        old = recorded(state_file)
        assert old is not None
        api.state.remove(old["id"])

        result = invoke(
            api,
            "--recreate-on-missing",
            "server",
            "apply",
            "-f",
            str(spec_file),
            "--state",
            str(state_file),
        )

        assert result.exit_code == 0, result.output
        assert "no longer exists" in result.stdout
        new = recorded(state_file)
        assert new is not None and new["id"] != old["id"]

    def test_vanished_server_fails_without_policy(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        old = recorded(state_file)
        assert old is not None
        api.state.remove(old["id"])

        result = invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))

        assert result.exit_code == 2
        assert "recreate_on_missing" in result.output
        assert recorded(state_file) == old
        assert len(api.allocate_calls) == 1

    def test_policy_from_environment(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        old = recorded(state_file)
        assert old is not None
        api.state.remove(old["id"])

        result = invoke(
            api,
            "server",
            "refresh",
            "--state",
            str(state_file),
            env={"RACKDOG_RECREATE_ON_MISSING": "true"},
        )

        assert result.exit_code == 0, result.output
        assert recorded(state_file) is None


class TestRefresh:
    def test_nothing_recorded(self, api: MockRackdogAPI, state_file: Path) -> None:
        result = invoke(api, "server", "refresh", "--state", str(state_file))

        assert result.exit_code == 0
        assert "No server recorded." in result.stdout
        assert api.calls == []

    def test_ip_change_absorbed(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        server = recorded(state_file)
        assert server is not None
        api.state.modify(server["id"], ip_address="10.0.0.99")

        result = invoke(api, "server", "refresh", "--state", str(state_file))

        assert result.exit_code == 0, result.output
        refreshed = recorded(state_file)
        assert refreshed is not None and refreshed["ip_address"] == "10.0.0.99"

    def test_drift_exits_with_two(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        server = recorded(state_file)
        assert server is not None
        api.state.modify(server["id"], hostname="web-2")

        result = invoke(api, "server", "refresh", "--state", str(state_file))

        assert result.exit_code == 2
        assert "Out-of-band change detected (hostname)" in result.output
        assert recorded(state_file) == server


class TestDestroyAndShow:
    def test_destroy(self, api: MockRackdogAPI, spec_file: Path, state_file: Path) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        server = recorded(state_file)
        assert server is not None

        result = invoke(api, "server", "destroy", "--state", str(state_file))

        assert result.exit_code == 0, result.output
        assert f"Server {server['id']} deleted." in result.stdout
        assert recorded(state_file) is None
        assert api.state.server_count == 0

    def test_destroy_failure_keeps_state(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        server = recorded(state_file)
        api.inject_error("DELETE", "/v1/servers/", 500, "locked")

        result = invoke(api, "server", "destroy", "--state", str(state_file))

        assert result.exit_code == 1
        assert "Delete failed" in result.output
        assert recorded(state_file) == server

    def test_show_without_api(self, api: MockRackdogAPI, state_file: Path) -> None:
        StateStore(state_file).save(None)

        result = invoke(api, "server", "show", "--state", str(state_file))

        assert result.exit_code == 0
        assert "No server recorded." in result.stdout
        assert api.calls == []


class TestImport:
    def test_import_existing_server(self, api: MockRackdogAPI, state_file: Path) -> None:
        server = api.state.allocate(plan_id=10, location_id=1, os_id=62, hostname="web-1")

        result = invoke(api, "server", "import", server.id, "--state", str(state_file))

        assert result.exit_code == 0, result.output
        assert f"Server {server.id} imported." in result.stdout
        imported = recorded(state_file)
        assert imported is not None
        assert imported["hostname"] == "web-1"
        assert imported["plan_id"] == 10

    def test_import_refuses_to_overwrite(
        self, api: MockRackdogAPI, spec_file: Path, state_file: Path
    ) -> None:
        invoke(api, "server", "apply", "-f", str(spec_file), "--state", str(state_file))
        other = api.state.allocate(plan_id=10, location_id=1, os_id=62)

        result = invoke(api, "server", "import", other.id, "--state", str(state_file))

        assert result.exit_code == 1
        assert "already records server" in result.output

    def test_import_unknown_server(self, api: MockRackdogAPI, state_file: Path) -> None:
        result = invoke(api, "server", "import", "srv-missing", "--state", str(state_file))

        assert result.exit_code == 1
        assert "Import failed" in result.output
        assert not state_file.exists()
