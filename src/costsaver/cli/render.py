"""Rendering of finished task trees."""

from rich.console import Console
from rich.text import Text
from rich.tree import Tree

from costsaver.core.tasks import TaskList, TaskNode, TaskStatus

_STATUS_STYLE = {
    TaskStatus.PENDING: ("○", "dim"),
    TaskStatus.RUNNING: ("…", "cyan"),
    TaskStatus.SKIPPED: ("↓", "yellow"),
    TaskStatus.SUCCEEDED: ("✔", "green"),
    TaskStatus.FAILED: ("✖", "red"),
}


def _label(node: TaskNode) -> Text:
    symbol, style = _STATUS_STYLE[node.status]
    label = Text.assemble((f"{symbol} ", style), (node.title, "bold" if node.failed else ""))
    if node.error:
        label.append(f"  {node.error}", style="red")
    elif node.output:
        label.append(f"  {node.output}", style="yellow" if node.warning else "dim")
    return label


def _add_children(tree: Tree, tasks: TaskList | None) -> None:
    if tasks is None:
        return
    for node in tasks:
        branch = tree.add(_label(node))
        _add_children(branch, node.children)


def render_tasks(title: str, tasks: TaskList, console: Console | None = None) -> None:
    """Print a task tree with the status of every node.

    Args:
        title: Root label
        tasks: Top level task list of a run
        console: Console to print to (stdout by default)
    """
    tree = Tree(Text(title, style="bold"))
    _add_children(tree, tasks)
    (console or Console()).print(tree)
