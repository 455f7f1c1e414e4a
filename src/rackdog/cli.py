"""Rackdog CLI (rackdog).

Drives the server lifecycle against a local state file and queries the
ordering catalog.

Usage:
    rackdog plans --location NY        # List hardware plans
    rackdog os                         # List operating systems
    rackdog server apply -f web.yaml   # Create, refresh or replace a server
    rackdog server refresh             # Re-read the server and detect drift
    rackdog server destroy             # Delete the server
    rackdog server import ID           # Adopt an existing server
    rackdog server show                # Print the recorded server

Exit codes: 0 success, 1 error, 2 out-of-band change detected.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import click

from .catalog import list_operating_systems, list_plans
from .config import ConfigurationError, ProviderConfig, RackdogError
from .controller import ResourceVanishedError, ServerController, plan_changes
from .drift import DriftError
from .main import setup_logging
from .models import ServerRecord
from .provider import ProviderContext, configure
from .spec_loader import load_spec
from .state_store import StateStore

DEFAULT_STATE_FILE = "rackdog.state.json"


class DriftDetected(click.ClickException):
    """Out-of-band change that needs manual reconciliation."""

    exit_code = 2


def _provider(ctx: click.Context) -> ProviderContext:
    """Configure the provider once per invocation from the group options."""
    obj: dict[str, Any] = ctx.ensure_object(dict)
    if "provider" in obj:
        return obj["provider"]

    try:
        config = ProviderConfig.from_env(
            endpoint=obj.get("endpoint"),
            api_key=obj.get("api_key"),
            recreate_on_missing=obj.get("recreate_on_missing"),
            timeout_seconds=obj.get("timeout"),
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    provider = configure(config, transport=obj.get("transport"))
    obj["provider"] = provider
    ctx.call_on_close(provider.close)
    return provider


def _echo_record(record: ServerRecord | None) -> None:
    if record is None:
        click.echo("No server recorded.")
        return
    click.echo(json.dumps(record.model_dump(), indent=2, sort_keys=True))


def _fail(e: RackdogError) -> click.ClickException:
    if isinstance(e, (DriftError, ResourceVanishedError)):
        return DriftDetected(str(e))
    return click.ClickException(str(e))


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="rackdog")
@click.option(
    "--endpoint", default=None, help="Rackdog API base URL (default: $RACKDOG_ENDPOINT)."
)
@click.option("--api-key", default=None, help="Rackdog API key (default: $RACKDOG_API_KEY).")
@click.option(
    "--recreate-on-missing/--no-recreate-on-missing",
    default=None,
    help="Forget servers deleted outside this tool so they can be recreated.",
)
@click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds.")
@click.option("-v", "--verbose", count=True, help="Increase log verbosity.")
@click.option("--log-format", type=click.Choice(["json", "text"]), default="json")
@click.pass_context
def cli(
    ctx: click.Context,
    endpoint: str | None,
    api_key: str | None,
    recreate_on_missing: bool | None,
    timeout: float | None,
    verbose: int,
    log_format: str,
) -> None:
    """Rackdog bare-metal server reconciler.

    \b
    Quick Start:
        export RACKDOG_API_KEY=...
        rackdog plans
        rackdog server apply -f server.yaml
    """
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    setup_logging(level, json_output=log_format == "json")

    obj: dict[str, Any] = ctx.ensure_object(dict)
    obj.update(
        endpoint=endpoint,
        api_key=api_key,
        recreate_on_missing=recreate_on_missing,
        timeout=timeout,
    )


# =============================================================================
# Catalog Commands
# =============================================================================


@cli.command("plans")
@click.option("--location", default=None, help="Location keyword filter (e.g. NY).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def plans_cmd(ctx: click.Context, location: str | None, as_json: bool) -> None:
    """List available hardware plans."""
    provider = _provider(ctx)
    try:
        rows = list_plans(provider, location)
    except RackdogError as e:
        raise click.ClickException(f"Failed to list plans: {e}") from e

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in rows], indent=2))
        return

    for r in rows:
        price = f"{r.price_monthly:g}" if r.price_monthly is not None else "-"
        click.echo(
            f"{r.id:>6}  {r.name:<30} {r.cores:>3} cores  {r.ram:>4} GB RAM  "
            f"{r.storage:>6} GB  {price:>8}/mo  {r.cpu_name}"
        )


@cli.command("os")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_context
def os_cmd(ctx: click.Context, as_json: bool) -> None:
    """List available operating systems."""
    provider = _provider(ctx)
    try:
        rows = list_operating_systems(provider)
    except RackdogError as e:
        raise click.ClickException(f"Failed to list operating systems: {e}") from e

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in rows], indent=2))
        return

    for r in rows:
        click.echo(f"{r.id:>6}  {r.name}")


# =============================================================================
# Server Commands
# =============================================================================

state_option = click.option(
    "--state",
    "state_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_STATE_FILE,
    show_default=True,
    help="State file holding the recorded server.",
)


@cli.group()
def server() -> None:
    """Server lifecycle commands."""
    pass


@server.command()
@click.option(
    "-f",
    "--spec",
    "spec_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="YAML file declaring the server.",
)
@state_option
@click.pass_context
def apply(ctx: click.Context, spec_path: Path, state_path: Path) -> None:
    """Create the server, or refresh it and replace it if the spec changed."""
    try:
        spec = load_spec(spec_path)
        store = StateStore(state_path)
        record = store.load()
    except RackdogError as e:
        raise click.ClickException(str(e)) from e

    controller = ServerController(_provider(ctx))

    try:
        if record is not None:
            record = controller.read(record)
            store.save(record)
            if record is None:
                click.echo("Recorded server no longer exists; it will be recreated.")

        if record is not None:
            changed = plan_changes(spec, record)
            if not changed:
                click.echo(f"Server {record.id} is up to date.")
                _echo_record(record)
                return

            click.echo(f"Replacing server {record.id}: {', '.join(changed)} changed.")
            controller.delete(record)
            store.save(None)

        record = controller.create(spec)
        store.save(record)
    except RackdogError as e:
        raise _fail(e) from e

    click.echo(f"Server {record.id} created.")
    _echo_record(record)


@server.command()
@state_option
@click.pass_context
def refresh(ctx: click.Context, state_path: Path) -> None:
    """Re-read the recorded server and detect out-of-band changes."""
    store = StateStore(state_path)
    try:
        record = store.load()
    except RackdogError as e:
        raise click.ClickException(str(e)) from e

    if record is None:
        click.echo("No server recorded.")
        return

    controller = ServerController(_provider(ctx))
    try:
        refreshed = controller.read(record)
        store.save(refreshed)
    except RackdogError as e:
        raise _fail(e) from e

    if refreshed is None:
        click.echo(f"Server {record.id} no longer exists; removed from state.")
        return
    _echo_record(refreshed)


@server.command()
@state_option
@click.pass_context
def destroy(ctx: click.Context, state_path: Path) -> None:
    """Delete the recorded server."""
    store = StateStore(state_path)
    try:
        record = store.load()
    except RackdogError as e:
        raise click.ClickException(str(e)) from e

    if record is None:
        click.echo("No server recorded.")
        return

    controller = ServerController(_provider(ctx))
    try:
        controller.delete(record)
        store.save(None)
    except RackdogError as e:
        raise _fail(e) from e

    click.echo(f"Server {record.id} deleted.")


@server.command("import")
@click.argument("server_id")
@state_option
@click.pass_context
def import_cmd(ctx: click.Context, server_id: str, state_path: Path) -> None:
    """Adopt an existing server by ID into the state file."""
    store = StateStore(state_path)
    try:
        existing = store.load()
    except RackdogError as e:
        raise click.ClickException(str(e)) from e

    if existing is not None:
        raise click.ClickException(
            f"State already records server {existing.id}; destroy it or use another --state."
        )

    controller = ServerController(_provider(ctx))
    try:
        record = controller.import_server(server_id)
        store.save(record)
    except RackdogError as e:
        raise _fail(e) from e

    click.echo(f"Server {record.id} imported.")
    _echo_record(record)


@server.command()
@state_option
def show(state_path: Path) -> None:
    """Print the recorded server without contacting the API."""
    try:
        record = StateStore(state_path).load()
    except RackdogError as e:
        raise click.ClickException(str(e)) from e
    _echo_record(record)
