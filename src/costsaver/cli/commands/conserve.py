"""Conserve command implementation."""

from costsaver.aws.client import AwsContext
from costsaver.cli.render import render_tasks
from costsaver.config.loader import load_config
from costsaver.config.models import ConfigOverrides
from costsaver.core.logging import get_logger
from costsaver.core.manager import Manager
from costsaver.core.registry import TrickRegistry
from costsaver.core.trick import TagFilter
from costsaver.state.store import StateStore

logger = get_logger(__name__)


async def run_conserve(
    config_file: str,
    overrides: ConfigOverrides,
    only: list[str],
    skip: list[str],
    tags: list[TagFilter],
    dry_run: bool,
    force: bool,
) -> bool:
    """Execute the conserve command.

    Args:
        config_file: Path to configuration file
        overrides: Configuration overrides from CLI/env
        only: Machine names of the only tricks to run
        skip: Machine names of tricks not to run
        tags: Resource tag filters
        dry_run: Report intended changes without making them
        force: Overwrite an unrestored state file

    Returns:
        True if every trick succeeded
    """
    config = load_config(config_file=config_file, overrides=overrides)

    registry = TrickRegistry.initialize(AwsContext(config))
    tricks = registry.select(only=only, skip=skip)

    logger.info(
        "Starting conserve run",
        tricks=",".join(t.machine_name() for t in tricks),
        dry_run=dry_run,
        state_file=config.state_file,
    )

    manager = Manager(registry, StateStore(config.state_file))
    try:
        return await manager.conserve(tricks, dry_run=dry_run, tags=tags, force=force)
    finally:
        if manager.plan is not None:
            render_tasks("Conserve" + (" (dry-run)" if dry_run else ""), manager.plan.tasks)
