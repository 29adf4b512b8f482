"""Registry of available tricks."""

from collections.abc import Iterable
from typing import Any

from costsaver.aws.client import AwsContext
from costsaver.core.errors import UnknownTrickError
from costsaver.core.trick import Trick
from costsaver.tricks.factory import create_all_tricks


class TrickRegistry:
    """Ordered collection of trick instances.

    The registry is built once at startup and handed to the Manager. It does
    not reject duplicate machine names; keeping them unique is up to whoever
    registers tricks.
    """

    def __init__(self) -> None:
        self._tricks: list[Trick[Any]] = []

    @classmethod
    def initialize(cls, aws: AwsContext) -> "TrickRegistry":
        """Build a registry holding every supported trick.

        Args:
            aws: AWS context shared by all tricks

        Returns:
            Populated registry
        """
        registry = cls()
        registry.register(*create_all_tricks(aws))
        return registry

    def register(self, *tricks: Trick[Any]) -> None:
        """Append tricks in the given order."""
        self._tricks.extend(tricks)

    def all(self) -> list[Trick[Any]]:
        """Get all tricks in registration order."""
        return list(self._tricks)

    def get(self, machine_name: str) -> Trick[Any]:
        """Find a trick by machine name.

        Args:
            machine_name: Machine name to look up

        Returns:
            The first trick registered under that name

        Raises:
            UnknownTrickError: If no trick has that name
        """
        for trick in self._tricks:
            if trick.machine_name() == machine_name:
                return trick
        raise UnknownTrickError(machine_name)

    def select(
        self, only: Iterable[str] = (), skip: Iterable[str] = ()
    ) -> list[Trick[Any]]:
        """Select tricks by machine name.

        Args:
            only: If non-empty, keep only these tricks
            skip: Drop these tricks

        Returns:
            Selected tricks in registration order

        Raises:
            UnknownTrickError: If a name in only or skip is not registered
        """
        only = set(only)
        skip = set(skip)
        for name in sorted(only | skip):
            self.get(name)

        return [
            trick
            for trick in self._tricks
            if (not only or trick.machine_name() in only) and trick.machine_name() not in skip
        ]
