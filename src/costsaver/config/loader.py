"""Configuration loading and parsing for cost-saver."""

import os
from pathlib import Path

import yaml

from costsaver.config.models import ConfigOverrides, CostSaverConfig
from costsaver.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_FILE = Path("cost-saver.yaml")


def load_config(
    config_file: str = "",
    overrides: ConfigOverrides | None = None,
) -> CostSaverConfig:
    """Load configuration from file or defaults.

    Args:
        config_file: Path to YAML configuration file (optional)
        overrides: Configuration overrides from CLI/env (optional)

    Returns:
        Loaded and validated configuration

    Raises:
        ValueError: If configuration is invalid
        FileNotFoundError: If specified config file doesn't exist
    """
    config: CostSaverConfig

    if config_file:
        config = _load_from_file(Path(config_file))
    elif DEFAULT_CONFIG_FILE.exists():
        config = _load_from_file(DEFAULT_CONFIG_FILE)
    else:
        logger.debug("No config file found, using defaults")
        config = CostSaverConfig()

    if overrides:
        _apply_overrides(config, overrides)

    return config


def _load_from_file(path: Path) -> CostSaverConfig:
    """Load configuration from a YAML file.

    Args:
        path: Path to configuration file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If file is invalid YAML or doesn't match schema
    """
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    logger.info("Loading configuration file", path=str(path))

    try:
        with path.open("r") as f:
            data = yaml.safe_load(f)

        # Treat empty files as empty configuration
        if data is None:
            data = {}

        if not isinstance(data, dict):
            raise ValueError("Configuration file must contain a YAML mapping")

        return CostSaverConfig.model_validate(data)

    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in configuration file: {e}") from e
    except Exception as e:
        raise ValueError(f"Failed to parse configuration: {e}") from e


def _apply_overrides(config: CostSaverConfig, overrides: ConfigOverrides) -> None:
    """Apply configuration overrides to a config object in-place.

    Args:
        config: Configuration to modify
        overrides: Override values to apply
    """
    if overrides.region:
        config.aws.region = overrides.region
    if overrides.profile:
        config.aws.profile = overrides.profile
    if overrides.state_file:
        config.state_file = overrides.state_file
    if overrides.max_concurrency is not None:
        config.max_concurrency = overrides.max_concurrency


def get_env_overrides() -> ConfigOverrides:
    """Get configuration overrides from environment variables.

    Environment variables are prefixed with COST_SAVER_ (e.g.,
    COST_SAVER_STATE_FILE).

    Returns:
        ConfigOverrides populated from environment variables

    Raises:
        ValueError: If COST_SAVER_MAX_CONCURRENCY is not an integer
    """

    def get_str(key: str) -> str:
        return os.getenv(f"COST_SAVER_{key.upper()}", "")

    def get_int(key: str) -> int | None:
        val = get_str(key).strip()
        if not val:
            return None
        try:
            return int(val)
        except ValueError:
            raise ValueError(f"COST_SAVER_{key.upper()} must be an integer, got '{val}'") from None

    return ConfigOverrides(
        region=get_str("region"),
        profile=get_str("profile"),
        state_file=get_str("state_file"),
        max_concurrency=get_int("max_concurrency"),
    )


def merge_overrides(cli: ConfigOverrides, env: ConfigOverrides) -> ConfigOverrides:
    """Combine CLI and environment overrides, CLI values winning.

    Args:
        cli: Overrides from command line flags
        env: Overrides from environment variables

    Returns:
        Combined overrides
    """
    return ConfigOverrides(
        region=cli.region or env.region,
        profile=cli.profile or env.profile,
        state_file=cli.state_file or env.state_file,
        max_concurrency=(
            cli.max_concurrency if cli.max_concurrency is not None else env.max_concurrency
        ),
    )
