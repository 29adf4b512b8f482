"""Reading and writing the state file."""

import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from costsaver.core.errors import StateFileError
from costsaver.core.logging import get_logger
from costsaver.state.models import STATE_VERSION, RunState

logger = get_logger(__name__)


class StateStore:
    """JSON file holding the RunState of the last conserve run."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> RunState:
        """Load the state file.

        Returns:
            Parsed run state

        Raises:
            FileNotFoundError: If the state file doesn't exist
            StateFileError: If the file is not a valid state file
        """
        if not self.path.exists():
            raise FileNotFoundError(f"State file '{self.path}' does not exist")

        try:
            run_state = RunState.model_validate_json(self.path.read_bytes())
        except (OSError, ValidationError) as e:
            raise StateFileError(f"Could not read state file '{self.path}': {e}") from e

        if run_state.version != STATE_VERSION:
            raise StateFileError(
                f"Unsupported state file version {run_state.version} in '{self.path}'"
            )

        logger.debug("Loaded state file", path=str(self.path), tricks=len(run_state.tricks))
        return run_state

    def save(self, run_state: RunState) -> None:
        """Write the state file atomically.

        Args:
            run_state: State to persist
        """
        contents = run_state.model_dump_json(indent=2)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w") as f:
                f.write(contents)
                f.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote state file", path=str(self.path), tricks=len(run_state.tricks))

    def remove(self) -> None:
        """Delete the state file if present."""
        if self.path.exists():
            self.path.unlink()
            logger.debug("Removed state file", path=str(self.path))
