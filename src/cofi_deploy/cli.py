"""
cofi-deploy CLI

Command-line interface for deploying and upgrading the Cofi Starknet
contracts.

Commands:
  deploy    - Fresh deploy (default) or upgrade (--upgrade) of a network
  status    - Show recorded deployments and snapshot history
  topology  - Show the desired contracts and wiring of a network
"""

from __future__ import annotations

import sys

import click

from . import __version__


# ============ Banner ============


def _print_banner() -> None:
    border = click.style("  ◆ ═══════════════════════════════════════ ◆", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()
    click.echo(
        click.style("        C O F I   D E P L O Y", fg="bright_white", bold=True)
        + click.style(f"    v{__version__}", dim=True)
    )
    click.secho("        ─── Starknet contract deployments ───", fg="cyan")
    click.echo()
    click.echo(border)
    click.echo()


# ============ Main CLI Group ============


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="cofi-deploy")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """cofi-deploy: Starknet deployment orchestrator."""
    if ctx.invoked_subcommand is None:
        _print_banner()
        click.echo(ctx.get_help())


# ============ Commands ============

from .commands.deploy import deploy
from .commands.status import status, topology

cli.add_command(deploy)
cli.add_command(status)
cli.add_command(topology)


# ============ Entry Points ============


def main() -> None:
    """cofi-deploy CLI entry point."""
    if sys.platform == "win32":
        try:
            sys.stdout.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
            sys.stderr.reconfigure(encoding="utf-8")  # type: ignore[union-attr]
        except (AttributeError, OSError):
            pass
    cli()


if __name__ == "__main__":
    main()
