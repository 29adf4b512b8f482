"""Main CLI application for cost-saver."""

import asyncio
from typing import Annotated

import typer
from botocore.exceptions import BotoCoreError

from costsaver.cli.commands.conserve import run_conserve
from costsaver.cli.commands.list import run_list
from costsaver.cli.commands.restore import run_restore
from costsaver.config.loader import get_env_overrides, merge_overrides
from costsaver.config.models import ConfigOverrides
from costsaver.core.errors import StateFileError, UnknownTrickError
from costsaver.core.logging import setup_logging
from costsaver.core.trick import TagFilter

app = typer.Typer(
    name="cost-saver",
    help="Temporarily scale down AWS resources and restore them later",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    str, typer.Option("--config", "-c", help="Path to configuration file")
]
StateFileOption = Annotated[
    str, typer.Option("--state-file", "-s", help="Path to the state file")
]
RegionOption = Annotated[str, typer.Option("--region", "-r", help="AWS region")]
ProfileOption = Annotated[str, typer.Option("--profile", "-p", help="AWS profile")]
DryRunOption = Annotated[
    bool, typer.Option("--dry-run", "-d", help="Only report what would be changed")
]


def split_comma_list(items: list[str] | None) -> list[str]:
    """Split repeated and comma-separated option values into one list."""
    result = []
    for item in items or []:
        result.extend([s.strip() for s in item.split(",") if s.strip()])
    return result


def _overrides(region: str, profile: str, state_file: str) -> ConfigOverrides:
    cli_overrides = ConfigOverrides(region=region, profile=profile, state_file=state_file)
    return merge_overrides(cli_overrides, get_env_overrides())


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    trace: Annotated[
        bool, typer.Option("--trace", help="Enable trace logging, including AWS SDK output")
    ] = False,
) -> None:
    """cost-saver - conserve AWS costs while resources are not needed."""
    setup_logging(verbose=verbose, trace=trace)


@app.command()
def conserve(
    dry_run: DryRunOption = False,
    only: Annotated[
        list[str] | None,
        typer.Option("--only", "-o", help="Only run these tricks (comma separated)"),
    ] = None,
    skip: Annotated[
        list[str] | None,
        typer.Option("--skip", help="Do not run these tricks (comma separated)"),
    ] = None,
    tag: Annotated[
        list[str] | None,
        typer.Option("--tag", "-t", help="Only conserve resources with these tags (key=value,...)"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite a state file that has not been restored"),
    ] = False,
    config: ConfigOption = "",
    state_file: StateFileOption = "",
    region: RegionOption = "",
    profile: ProfileOption = "",
) -> None:
    """Capture current state and scale resources down."""
    try:
        tags = [f for item in tag or [] for f in TagFilter.parse(item)]
        succeeded = asyncio.run(
            run_conserve(
                config,
                _overrides(region, profile, state_file),
                only=split_comma_list(only),
                skip=split_comma_list(skip),
                tags=tags,
                dry_run=dry_run,
                force=force,
            )
        )
    except (ValueError, FileNotFoundError, UnknownTrickError, StateFileError, BotoCoreError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    if not succeeded:
        raise typer.Exit(code=1)


@app.command()
def restore(
    dry_run: DryRunOption = False,
    config: ConfigOption = "",
    state_file: StateFileOption = "",
    region: RegionOption = "",
    profile: ProfileOption = "",
) -> None:
    """Restore resources to the state captured by conserve."""
    try:
        succeeded = asyncio.run(
            run_restore(config, _overrides(region, profile, state_file), dry_run=dry_run)
        )
    except (ValueError, FileNotFoundError, StateFileError, BotoCoreError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    if not succeeded:
        raise typer.Exit(code=1)


@app.command(name="list")
def list_tricks(
    config: ConfigOption = "",
    region: RegionOption = "",
    profile: ProfileOption = "",
) -> None:
    """List the available tricks."""
    try:
        run_list(config, _overrides(region, profile, ""))
    except (ValueError, FileNotFoundError, BotoCoreError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e


if __name__ == "__main__":
    app()
