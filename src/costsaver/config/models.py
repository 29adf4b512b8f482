"""Configuration models for cost-saver using Pydantic."""

from pydantic import BaseModel, Field

DEFAULT_STATE_FILE = "cost-saver.json"


class ConfigOverrides(BaseModel):
    """CLI flag and environment variable overrides for configuration."""

    region: str = ""
    profile: str = ""
    state_file: str = ""
    max_concurrency: int | None = None


class AwsConfig(BaseModel):
    """Configuration for the AWS session."""

    region: str = ""
    profile: str = ""


class WaiterConfig(BaseModel):
    """Polling bounds used while waiting for resources to become stable.

    All values are in seconds. Delays grow exponentially from ``delay`` up to
    ``max_delay``; waiting gives up after ``timeout``.
    """

    model_config = {"populate_by_name": True}

    delay: float = Field(5.0, ge=0)
    max_delay: float = Field(30.0, ge=0, alias="max-delay")
    timeout: float = Field(900.0, ge=0)


class CostSaverConfig(BaseModel):
    """Main configuration for cost-saver."""

    model_config = {"populate_by_name": True}

    aws: AwsConfig = Field(default_factory=AwsConfig)
    waiter: WaiterConfig = Field(default_factory=WaiterConfig)
    state_file: str = Field(DEFAULT_STATE_FILE, alias="state-file")
    # 0 disables the cap on simultaneous provider calls
    max_concurrency: int = Field(10, ge=0, alias="max-concurrency")

