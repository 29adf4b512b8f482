"""Task tree executor.

A run is a tree of named tasks. A task's action may return a further
``TaskList`` which is then executed in place, so the tree can grow while it
runs (for example one child per resource discovered by an API call).

Children of a sequential list run one after another in the order they were
added. Children of a concurrent list are started together. A failing task
never cancels its siblings: the exception is caught at the task boundary,
recorded on the task and reflected in the aggregate status of its parents.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterator
from enum import Enum
from typing import Optional

from costsaver.core.logging import get_logger

logger = get_logger(__name__)


class TaskStatus(str, Enum):
    """Status of a task node."""

    PENDING = "pending"
    RUNNING = "running"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


Action = Callable[["TaskNode"], Awaitable[Optional["TaskList"]]]


class TaskNode:
    """A named operation in the task tree.

    Actions receive the node itself so they can report progress through
    ``output`` or mark the node as skipped with ``skip()``.
    """

    def __init__(
        self,
        title: str,
        action: Action | None = None,
        children: "TaskList | None" = None,
    ) -> None:
        """Initialize the TaskNode.

        Args:
            title: Human readable title
            action: Coroutine function called with this node; may return a TaskList
            children: Statically known children, run after the action
        """
        self.title = title
        self.action = action
        self.children = children
        self.status = TaskStatus.PENDING
        self.error: str | None = None
        self.warning = False
        self._output = ""

    @property
    def output(self) -> str:
        """Latest progress or skip message."""
        return self._output

    @output.setter
    def output(self, text: str) -> None:
        self._output = text
        logger.debug(text, task=self.title)

    def skip(self, reason: str, warning: bool = False) -> None:
        """Mark the task as skipped.

        Args:
            reason: Why the task was skipped
            warning: Whether the skip needs the user's attention
        """
        self.status = TaskStatus.SKIPPED
        self.warning = warning
        self._output = reason
        if warning:
            logger.warning(reason, task=self.title)
        else:
            logger.debug(reason, task=self.title)

    @property
    def failed(self) -> bool:
        return self.status is TaskStatus.FAILED

    async def run(self) -> TaskStatus:
        """Run the action, then any children, and settle the aggregate status.

        Returns:
            Final status of this node
        """
        self.status = TaskStatus.RUNNING

        try:
            if self.action is not None:
                expansion = await self.action(self)
                if expansion is not None:
                    self.children = expansion
        except Exception as e:
            self.status = TaskStatus.FAILED
            self.error = str(e) or type(e).__name__
            logger.error("Task failed", task=self.title, error=self.error)
            return self.status

        children_ok = True
        if self.children is not None:
            children_ok = await self.children.run()

        if not children_ok:
            self.status = TaskStatus.FAILED
        elif self.status is not TaskStatus.SKIPPED:
            self.status = TaskStatus.SUCCEEDED

        return self.status

    def walk(self, depth: int = 0) -> Iterator[tuple[int, "TaskNode"]]:
        """Yield this node and its descendants with their depth."""
        yield depth, self
        if self.children is not None:
            for child in self.children:
                yield from child.walk(depth + 1)


class TaskList:
    """An ordered group of sibling tasks, run sequentially or concurrently."""

    def __init__(self, tasks: list[TaskNode] | None = None, concurrent: bool = False) -> None:
        """Initialize the TaskList.

        Args:
            tasks: Initial tasks
            concurrent: Start all tasks together instead of one after another
        """
        self.tasks: list[TaskNode] = list(tasks or [])
        self.concurrent = concurrent

    def add(self, title: str, action: Action | None = None) -> TaskNode:
        """Append a new task.

        Tasks may be added while the list is running; they are picked up
        before the list finishes.

        Args:
            title: Task title
            action: Task action

        Returns:
            The created task
        """
        node = TaskNode(title, action)
        self.tasks.append(node)
        return node

    def __iter__(self) -> Iterator[TaskNode]:
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def failed(self) -> bool:
        """Whether any task in this list failed."""
        return any(task.failed for task in self.tasks)

    async def run(self) -> bool:
        """Run every task in the list.

        Returns:
            True if no task failed
        """
        started = 0
        while started < len(self.tasks):
            if self.concurrent:
                batch = self.tasks[started:]
                started = len(self.tasks)
                await asyncio.gather(*(task.run() for task in batch))
            else:
                task = self.tasks[started]
                started += 1
                await task.run()

        return not self.failed
