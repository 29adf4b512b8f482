"""Plan for executing conserve and restore runs."""

from typing import Any

from costsaver.core.logging import get_logger
from costsaver.core.tasks import TaskList, TaskNode
from costsaver.core.trick import TagFilter, Trick
from costsaver.state.models import TrickSnapshot

logger = get_logger(__name__)


class Plan:
    """Plan holds one task branch per trick taking part in a run.

    Tricks are run one after another; each trick decides whether its own
    resource subtasks run concurrently.
    """

    def __init__(self, dry_run: bool) -> None:
        """Initialize the Plan.

        Args:
            dry_run: Report intended changes without making them
        """
        self.dry_run = dry_run
        self.tasks = TaskList(concurrent=False)
        self.branches: dict[str, TaskNode] = {}
        self.snapshots: dict[str, TrickSnapshot] = {}

    def add_conserve(self, trick: Trick[Any], tags: list[TagFilter]) -> TaskNode:
        """Add a branch conserving a trick's resources.

        The snapshot is recorded as soon as the trick has captured state, so
        it is kept even if some resource subtasks fail afterwards. If the
        trick fails before returning state, nothing is recorded.

        Args:
            trick: Trick to conserve
            tags: Filters passed through to the trick

        Returns:
            The branch node
        """
        name = trick.machine_name()
        log = logger.bind(trick=name)

        async def conserve(task: TaskNode) -> TaskList:
            subtasks = TaskList(concurrent=trick.can_be_concurrent())
            state = await trick.conserve(subtasks, self.dry_run, tags)
            self.snapshots[name] = TrickSnapshot(
                state=trick.dump_state(state), dry_run=self.dry_run
            )
            log.debug("Captured state", resources=len(subtasks))
            if not subtasks:
                task.skip("No resources found")
            return subtasks

        return self._add_branch(name, trick.display_name(), conserve)

    def add_restore(self, trick: Trick[Any], snapshot: TrickSnapshot) -> TaskNode:
        """Add a branch restoring a trick's resources from a snapshot.

        Args:
            trick: Trick to restore
            snapshot: Snapshot captured by an earlier conserve run

        Returns:
            The branch node
        """
        log = logger.bind(trick=trick.machine_name())

        async def restore(task: TaskNode) -> TaskList:
            state = trick.load_state(snapshot.state)
            log.debug("Loaded state", captured_at=snapshot.captured_at.isoformat())
            subtasks = TaskList(concurrent=trick.can_be_concurrent())
            await trick.restore(subtasks, self.dry_run, state)
            if not subtasks:
                task.skip("Nothing to restore")
            return subtasks

        return self._add_branch(trick.machine_name(), trick.display_name(), restore)

    def add_unknown(self, machine_name: str) -> TaskNode:
        """Add a skipped branch for a snapshot with no registered trick.

        Args:
            machine_name: Machine name found in the state file

        Returns:
            The branch node
        """

        async def unknown(task: TaskNode) -> None:
            task.skip(f"No registered trick named '{machine_name}', keeping its state", warning=True)

        return self._add_branch(machine_name, machine_name, unknown)

    async def execute(self) -> bool:
        """Run every branch.

        Returns:
            True if no branch failed
        """
        logger.debug("Executing plan", branches=len(self.tasks), dry_run=self.dry_run)
        return await self.tasks.run()

    def _add_branch(self, name: str, title: str, action: Any) -> TaskNode:
        node = self.tasks.add(title, action)
        self.branches[name] = node
        return node
