"""List command implementation."""

from rich.console import Console
from rich.table import Table

from costsaver.aws.client import AwsContext
from costsaver.config.loader import load_config
from costsaver.config.models import ConfigOverrides
from costsaver.core.registry import TrickRegistry


def run_list(config_file: str, overrides: ConfigOverrides, console: Console | None = None) -> None:
    """Print the registered tricks."""
    config = load_config(config_file=config_file, overrides=overrides)
    registry = TrickRegistry.initialize(AwsContext(config))

    table = Table("Machine name", "Display name", "Concurrent")
    for trick in registry.all():
        table.add_row(
            trick.machine_name(),
            trick.display_name(),
            "yes" if trick.can_be_concurrent() else "no",
        )

    (console or Console()).print(table)
