"""
Status - Inspect recorded deployments and the desired topology.

Both commands are read-only: no chain access and no deployer key needed.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import click

from ..config import DEFAULT_DEPLOYMENTS_DIR, NETWORKS, load_context
from ..errors import DeployError
from ..ledger import LedgerStore
from ..topology import cofi_topology

_network_option = click.option(
    "--network",
    "-n",
    type=click.Choice(list(NETWORKS)),
    default="devnet",
    show_default=True,
    envvar="STARKNET_NETWORK",
    help="Network to inspect",
)


def _fail(exc: DeployError) -> None:
    click.secho(f"ERROR: {exc}", fg="red")
    sys.exit(exc.exit_code)


@click.command()
@_network_option
@click.option(
    "--deployments-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_DEPLOYMENTS_DIR,
    show_default=True,
    help="Directory holding the deployment manifests",
)
@click.option("--history", is_flag=True, help="Also list the snapshot audit trail")
def status(network: str, deployments_dir: Path, history: bool) -> None:
    """Show the contracts recorded for a network."""
    store = LedgerStore(deployments_dir)
    try:
        ledger = store.load(network)
    except DeployError as exc:
        _fail(exc)

    click.echo(f"=== {network} ({store.latest_path(network)}) ===")
    click.echo("")

    if not len(ledger):
        click.echo("  No deployments recorded.")
    for record in ledger.records():
        click.echo(f"  {record.contract}")
        click.echo(f"    Address:    {record.address}")
        click.echo(f"    Class hash: {record.class_hash}")

    if history:
        click.echo("")
        snapshots = store.snapshots(network)
        click.echo(f"  Snapshots: {len(snapshots)}")
        for path in snapshots:
            try:
                count = len(store.load_snapshot(path))
            except DeployError as exc:
                click.secho(f"    {path.name}  (unreadable: {exc.message})", fg="yellow")
                continue
            click.echo(f"    {path.name}  ({count} contract(s))")


@click.command()
@_network_option
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Environment file (for TOKEN_METADATA_URL)",
)
def topology(network: str, env_file: Optional[Path]) -> None:
    """Show the contracts and wiring desired on a network, in deploy order."""
    try:
        context = load_context(
            network,
            artifacts_dir=Path("."),
            env_path=env_file,
            require_identity=False,
        )
        desired = cofi_topology(context)
        order = desired.ordered()
    except DeployError as exc:
        _fail(exc)

    click.echo(f"=== {network} topology ===")
    click.echo("")
    for index, spec in enumerate(order, start=1):
        flags = " (upgradeable)" if spec.upgradeable else ""
        click.echo(f"  {index}. {spec.name}{flags}")
        deps = sorted(spec.dependencies())
        if deps:
            click.echo(f"       after: {', '.join(deps)}")

    click.echo("")
    click.echo("  Wiring (one multicall):")
    for call in desired.wiring:
        click.echo(f"    {call.target}.{call.entrypoint}")
