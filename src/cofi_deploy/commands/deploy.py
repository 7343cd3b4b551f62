"""
Deploy - Bring a network's contracts to the desired state.

Fresh-deploy mode (default):
1. Load the network's ledger (or start empty with --reset)
2. Declare + deploy every missing contract in dependency order
3. Wire the system with one multicall
4. Export the latest manifest and a timestamped snapshot

Upgrade mode (--upgrade): declare new classes for the upgradeable
contracts and call upgrade(class_hash) on their recorded addresses.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from ..chain.artifacts import ArtifactResolver, find_artifacts_dir
from ..chain.gateway import StarknetGateway
from ..config import DEFAULT_DEPLOYMENTS_DIR, NETWORKS, DeployContext, load_context
from ..errors import DeployError
from ..ledger import LedgerStore
from ..orchestrator import ContractState, Orchestrator, PlanStep, RunReport
from ..topology import cofi_topology

_STATE_COLOURS = {
    ContractState.DEPLOYED: "green",
    ContractState.UPGRADED: "green",
    ContractState.SKIPPED: "bright_black",
    ContractState.FAILED: "red",
}

_ACTION_COLOURS = {
    "deploy": "green",
    "upgrade": "green",
    "skip": "bright_black",
    "unchanged": "bright_black",
    "missing": "red",
}


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="        %(message)s",
        force=True,
    )


def parse_features(value: Optional[str]) -> Optional[list[str]]:
    """Split a comma-separated --feature value into contract names."""
    if not value:
        return None
    names = [name.strip() for name in value.split(",") if name.strip()]
    return names or None


def build_orchestrator(context: DeployContext, dry_run: bool = False) -> Orchestrator:
    """Wire the production components for a run context."""
    resolver = ArtifactResolver(context.artifacts_dir, package=context.package)
    store = LedgerStore(context.deployments_dir)
    gateway = None if dry_run else StarknetGateway(context, resolver)
    return Orchestrator(context, cofi_topology(context), store, resolver, gateway)


def _print_header(context: DeployContext, mode: str) -> None:
    click.echo()
    click.echo(
        click.style("  ◆ ", fg="cyan")
        + click.style(mode, fg="bright_white", bold=True)
        + click.style(f" ─── {context.network}", fg="cyan")
    )
    click.echo()
    click.echo(click.style("        RPC:       ", dim=True) + click.style(context.rpc_url, fg="bright_white"))
    click.echo(click.style("        Deployer:  ", dim=True) + click.style(context.deployer_address, fg="bright_white"))
    click.echo(click.style("        Artifacts: ", dim=True) + click.style(str(context.artifacts_dir), fg="bright_white"))
    click.echo(click.style("        Ledger:    ", dim=True) + click.style(str(context.deployments_dir), fg="bright_white"))
    click.echo()


def _print_plan(steps: list[PlanStep]) -> None:
    click.secho("  Plan ───────────────────────────────────", fg="cyan")
    click.echo()
    if not steps:
        click.secho("        Nothing to do.", dim=True)
    for step in steps:
        click.echo(
            "        "
            + click.style(f"{step.action:<10}", fg=_ACTION_COLOURS.get(step.action, "white"), bold=True)
            + click.style(f"{step.contract:<16}", fg="bright_white")
            + click.style(step.detail, dim=True)
        )
    click.echo()


def _print_report(report: RunReport, context: DeployContext, orchestrator: Orchestrator) -> None:
    click.secho("  Summary ────────────────────────────────", fg="cyan")
    click.echo()
    store = orchestrator.store
    ledger = store.load(context.network)
    for name, state in report.states.items():
        record = ledger.get(name)
        address = record.address if record else "-"
        click.echo(
            "        "
            + click.style(f"{state.value:<10}", fg=_STATE_COLOURS.get(state, "white"), bold=True)
            + click.style(f"{name:<16}", fg="bright_white")
            + click.style(address, dim=True)
        )
        link = context.explorer_link(address) if record else None
        if link:
            click.secho(f"                  {link}", dim=True)
    if report.wiring_tx is not None:
        click.echo()
        click.echo(click.style("        Wiring tx: ", dim=True) + click.style(hex(report.wiring_tx), fg="bright_white"))
    if report.export is not None:
        click.echo(click.style("        Latest:    ", dim=True) + click.style(str(report.export.latest), fg="bright_white"))
        click.echo(click.style("        Snapshot:  ", dim=True) + click.style(str(report.export.snapshot), fg="bright_white"))
    click.echo()


def _print_failure(exc: DeployError) -> None:
    click.echo()
    click.secho(f"  ✗ {type(exc).__name__}: {exc.message}", fg="red", bold=True)
    if exc.contract:
        click.echo(click.style("        Contract:  ", dim=True) + click.style(exc.contract, fg="bright_white"))
    if exc.step:
        click.echo(click.style("        Step:      ", dim=True) + click.style(exc.step, fg="bright_white"))
    click.echo()


@click.command()
@click.option(
    "--network",
    "-n",
    type=click.Choice(list(NETWORKS)),
    default="devnet",
    show_default=True,
    envvar="STARKNET_NETWORK",
    help="Target network",
)
@click.option(
    "--reset/--no-reset",
    default=True,
    show_default=True,
    help="Ignore recorded deployments and deploy everything again",
)
@click.option("--upgrade", is_flag=True, help="Upgrade existing contracts instead of deploying")
@click.option("--feature", "feature", help="Comma-separated subset of contracts to handle")
@click.option(
    "--deployments-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_DEPLOYMENTS_DIR,
    show_default=True,
    help="Directory holding the deployment manifests",
)
@click.option(
    "--artifacts-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Scarb output directory (default: nearest contracts/target/dev)",
)
@click.option("--package", help="Scarb package prefix of the artifact files")
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Environment file with RPC URLs and deployer keys (default: ./.env)",
)
@click.option("--dry-run", is_flag=True, help="Show what would happen without touching the chain")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def deploy(
    network: str,
    reset: bool,
    upgrade: bool,
    feature: Optional[str],
    deployments_dir: Path,
    artifacts_dir: Optional[Path],
    package: Optional[str],
    env_file: Optional[Path],
    dry_run: bool,
    verbose: bool,
) -> None:
    """
    Deploy or upgrade the contracts of a network.

    Without --upgrade, deploys every contract the ledger does not know yet
    (all of them with --reset) and wires them together. With --upgrade,
    points the recorded contracts at newly declared classes.
    """
    configure_logging(verbose)
    features = parse_features(feature)

    try:
        context = load_context(
            network,
            artifacts_dir=artifacts_dir or find_artifacts_dir(),
            deployments_dir=deployments_dir,
            package=package,
            env_path=env_file,
            require_identity=not dry_run,
        )
        _print_header(context, "Upgrade" if upgrade else "Deploy")

        orchestrator = build_orchestrator(context, dry_run=dry_run)
        if dry_run:
            _print_plan(orchestrator.plan(reset=reset, upgrade=upgrade, features=features))
            return

        if upgrade:
            report = asyncio.run(orchestrator.upgrade(features))
        else:
            report = asyncio.run(orchestrator.deploy(reset=reset, features=features))
    except DeployError as exc:
        _print_failure(exc)
        sys.exit(exc.exit_code)

    _print_report(report, context, orchestrator)
    click.echo(
        click.style("  ◆ ", fg="green")
        + click.style("Done", fg="green", bold=True)
        + click.style(f" ({len(report.deployed)} deployed, {len(report.upgraded)} upgraded)", dim=True)
    )
    click.echo()
