"""Data models for the persisted state file."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

STATE_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TrickSnapshot(BaseModel):
    """State captured by one trick during a conserve run.

    Attributes:
        state: Trick-encoded state, opaque to everything but the trick
        captured_at: When conserve captured the state
        dry_run: Whether the conserve run made no changes
    """

    state: Any = None
    captured_at: datetime = Field(default_factory=utc_now)
    dry_run: bool = False


class RunState(BaseModel):
    """Snapshots of a conserve run keyed by trick machine name."""

    version: int = STATE_VERSION
    tricks: dict[str, TrickSnapshot] = Field(default_factory=dict)

    @property
    def has_live_snapshots(self) -> bool:
        """Whether any snapshot was captured by a run that made changes."""
        return any(not snapshot.dry_run for snapshot in self.tricks.values())
