"""Exception types raised by cost-saver."""


class CostSaverError(Exception):
    """Base class for all cost-saver errors."""


class DiscoveryError(CostSaverError):
    """Raised when resources cannot be listed or described.

    Fails the whole branch of the trick that was discovering resources.
    """


class MutationError(CostSaverError):
    """Raised when the provider rejects a call that changes a resource."""


class StabilityTimeoutError(MutationError):
    """Raised when a resource does not become stable within the waiter bound.

    Attributes:
        description: What was being waited for
        timeout: The bound that was exceeded, in seconds
    """

    def __init__(self, description: str, timeout: float) -> None:
        """Initialize StabilityTimeoutError.

        Args:
            description: What was being waited for
            timeout: The bound that was exceeded, in seconds
        """
        self.description = description
        self.timeout = timeout
        super().__init__(f"Timed out after {timeout:g}s waiting for {description}")


class StateMismatchError(CostSaverError):
    """Raised when captured state no longer matches an existing resource."""


class UnknownTrickError(CostSaverError, KeyError):
    """Raised when no registered trick has the requested machine name."""

    def __init__(self, machine_name: str) -> None:
        self.machine_name = machine_name
        super().__init__(f"No trick registered with machine name '{machine_name}'")

    def __str__(self) -> str:
        return str(self.args[0])


class StateFileError(CostSaverError):
    """Raised when the state file cannot be read or does not validate."""


class StateFileExistsError(StateFileError):
    """Raised when conserving would overwrite a snapshot that was never restored."""
