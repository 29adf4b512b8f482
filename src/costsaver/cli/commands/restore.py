"""Restore command implementation."""

from costsaver.aws.client import AwsContext
from costsaver.cli.render import render_tasks
from costsaver.config.loader import load_config
from costsaver.config.models import ConfigOverrides
from costsaver.core.logging import get_logger
from costsaver.core.manager import Manager
from costsaver.core.registry import TrickRegistry
from costsaver.state.store import StateStore

logger = get_logger(__name__)


async def run_restore(config_file: str, overrides: ConfigOverrides, dry_run: bool) -> bool:
    """Execute the restore command to bring conserved resources back.

    Args:
        config_file: Path to configuration file
        overrides: Configuration overrides from CLI/env
        dry_run: Report intended changes without making them

    Returns:
        True if every trick succeeded
    """
    config = load_config(config_file=config_file, overrides=overrides)

    logger.info("Starting restore run", dry_run=dry_run, state_file=config.state_file)

    registry = TrickRegistry.initialize(AwsContext(config))
    manager = Manager(registry, StateStore(config.state_file))
    try:
        return await manager.restore(dry_run=dry_run)
    finally:
        if manager.plan is not None:
            render_tasks("Restore" + (" (dry-run)" if dry_run else ""), manager.plan.tasks)
