"""Manager for orchestrating conserve and restore runs."""

from typing import Any

from costsaver.core.errors import StateFileExistsError, UnknownTrickError
from costsaver.core.logging import get_logger
from costsaver.core.plan import Plan
from costsaver.core.registry import TrickRegistry
from costsaver.core.trick import TagFilter, Trick
from costsaver.state.models import RunState
from costsaver.state.store import StateStore

logger = get_logger(__name__)


class Manager:
    """Manager coordinates runs across tricks and owns the state file.

    Snapshots are collected in memory while the task tree runs and written
    in a single write once the whole run has finished.
    """

    def __init__(self, registry: TrickRegistry, store: StateStore) -> None:
        """Initialize the Manager.

        Args:
            registry: Registered tricks
            store: State file access
        """
        self.registry = registry
        self.store = store
        self.plan: Plan | None = None

    async def conserve(
        self,
        tricks: list[Trick[Any]],
        dry_run: bool = False,
        tags: list[TagFilter] | None = None,
        force: bool = False,
    ) -> bool:
        """Conserve the resources of the given tricks.

        Args:
            tricks: Tricks to run, in order
            dry_run: Report intended changes without making them
            tags: Filters passed to every trick
            force: Overwrite a state file holding snapshots of a real run

        Returns:
            True if every branch succeeded or was skipped

        Raises:
            StateFileExistsError: If a previous conserve was never restored
            StateFileError: If the existing state file cannot be read
        """
        if self.store.exists() and not force:
            previous = self.store.load()
            if previous.has_live_snapshots:
                raise StateFileExistsError(
                    f"State file '{self.store.path}' holds a conserve run that was not restored; "
                    "restore it first or pass --force"
                )

        self.plan = Plan(dry_run=dry_run)
        for trick in tricks:
            self.plan.add_conserve(trick, tags or [])

        succeeded = await self.plan.execute()

        run_state = RunState()
        for trick in tricks:
            snapshot = self.plan.snapshots.get(trick.machine_name())
            if snapshot is not None:
                run_state.tricks[trick.machine_name()] = snapshot
        self.store.save(run_state)

        logger.info(
            "Conserve run finished",
            succeeded=succeeded,
            dry_run=dry_run,
            captured=len(run_state.tricks),
        )
        return succeeded

    async def restore(self, dry_run: bool = False) -> bool:
        """Restore every trick that has a snapshot in the state file.

        Successfully restored snapshots are removed from the state file;
        failed and unknown ones are kept so the restore can be retried.

        Args:
            dry_run: Report intended changes without making them

        Returns:
            True if every branch succeeded or was skipped

        Raises:
            FileNotFoundError: If there is no state file
            StateFileError: If the state file cannot be read
        """
        run_state = self.store.load()

        self.plan = Plan(dry_run=dry_run)
        unknown: set[str] = set()
        for name, snapshot in run_state.tricks.items():
            try:
                trick = self.registry.get(name)
            except UnknownTrickError:
                unknown.add(name)
                self.plan.add_unknown(name)
                continue
            self.plan.add_restore(trick, snapshot)

        succeeded = await self.plan.execute()

        if not dry_run:
            remaining = RunState(
                tricks={
                    name: snapshot
                    for name, snapshot in run_state.tricks.items()
                    if name in unknown or self.plan.branches[name].failed
                }
            )
            if remaining.tricks:
                self.store.save(remaining)
            else:
                self.store.remove()

        logger.info("Restore run finished", succeeded=succeeded, dry_run=dry_run)
        return succeeded
