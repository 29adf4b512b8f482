"""Trick protocol for conserve/restore operations.

A trick conserves one family of resources (for example ECS services) by
capturing their current configuration and degrading them, and restores them
later from the captured state alone.
"""

from typing import Any, Protocol, TypeVar, runtime_checkable

from pydantic import BaseModel, Field

from costsaver.core.tasks import TaskList

StateT = TypeVar("StateT")


class TagFilter(BaseModel):
    """Selects resources carrying ``key`` with one of ``values``."""

    key: str
    values: list[str] = Field(default_factory=list)

    @classmethod
    def parse(cls, text: str) -> list["TagFilter"]:
        """Parse ``key=value,key2=value2`` into filters.

        Repeated keys accumulate values, so ``env=dev,env=qa`` selects
        resources tagged with either value.

        Args:
            text: Comma separated key=value pairs

        Returns:
            One filter per distinct key, in first-seen order

        Raises:
            ValueError: If a pair has no '=' or an empty key
        """
        filters: dict[str, TagFilter] = {}
        for pair in text.split(","):
            pair = pair.strip()
            if not pair:
                continue
            key, sep, value = pair.partition("=")
            key = key.strip()
            if not sep or not key:
                raise ValueError(f"Invalid tag filter '{pair}', expected key=value")
            filters.setdefault(key, cls(key=key)).values.append(value.strip())
        return list(filters.values())


@runtime_checkable
class Trick(Protocol[StateT]):
    """Protocol for components that can conserve and restore resources."""

    def machine_name(self) -> str:
        """Get the stable identifier used as the state file key.

        Returns:
            Machine name (e.g., 'stop-fargate-ecs-services')
        """
        ...

    def display_name(self) -> str:
        """Get the human readable name.

        Returns:
            Display name (e.g., 'Stop Fargate ECS Services')
        """
        ...

    def can_be_concurrent(self) -> bool:
        """Check whether this trick's subtasks may run concurrently.

        Returns:
            True if resource subtasks can be started together
        """
        ...

    async def conserve(self, tasks: TaskList, dry_run: bool, tags: list[TagFilter]) -> StateT:
        """Capture current configuration and add degrading subtasks.

        Every discovered resource must appear in the returned state; resources
        that need no change get a skipped subtask.

        Args:
            tasks: Task list to add one subtask per resource to
            dry_run: Report intended changes without making them
            tags: Filters selecting which resources to conserve

        Returns:
            State sufficient to restore every resource on its own

        Raises:
            DiscoveryError: If resources cannot be listed or described
        """
        ...

    async def restore(self, tasks: TaskList, dry_run: bool, state: StateT) -> None:
        """Add subtasks bringing resources back to the captured state.

        Args:
            tasks: Task list to add one subtask per resource to
            dry_run: Report intended changes without making them
            state: State previously returned by conserve
        """
        ...

    def dump_state(self, state: StateT) -> Any:
        """Encode state into JSON-compatible data."""
        ...

    def load_state(self, data: Any) -> StateT:
        """Decode state produced by dump_state."""
        ...
