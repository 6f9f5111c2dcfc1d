"""
YAML configuration for packsync.

The configuration file lives in the platformdirs config directory and holds
flat upper-case keys. Every key is optional; values that cannot be parsed
fall back to the defaults with a warning.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from packsync.constants import (
    CONFIG_FILE_NAME,
    CONFIG_KEY_BACKOFF_STEP,
    CONFIG_KEY_INSTALL_DIR,
    CONFIG_KEY_MAX_CONCURRENT,
    CONFIG_KEY_MAX_RETRIES,
    CONFIG_KEY_REQUEST_TIMEOUT,
    DEFAULT_BACKOFF_STEP,
    DEFAULT_FETCH_RETRIES,
    DEFAULT_REQUEST_TIMEOUT,
)
from packsync.exceptions import ConfigFileError
from packsync.fetch import FetchConfig
from packsync.log_utils import logger
from packsync.paths import config_dir, default_game_dir


def get_config_file() -> Path:
    return config_dir() / CONFIG_FILE_NAME


def load_config(path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Load the packsync configuration YAML.

    Parameters:
        path (Optional[Path]): Config file to read; defaults to the platformdirs
            location.

    Returns:
        Optional[Dict[str, Any]]: The configuration mapping, or None if the file
        does not exist.

    Raises:
        ConfigFileError: If the file cannot be read, is not valid YAML, or does
            not contain a mapping.
    """
    config_path = Path(path) if path else get_config_file()
    if not config_path.exists():
        return None

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigFileError(
            f"Failed to load configuration from {config_path}", details=str(e)
        ) from e

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigFileError(
            f"Configuration in {config_path} must be a mapping",
            details=f"got {type(config).__name__}",
        )
    logger.debug(f"Loaded configuration from {config_path}")
    return config


def save_config(config: Dict[str, Any], path: Optional[Path] = None) -> Path:
    """
    Write `config` as YAML, creating the config directory if needed.

    Raises:
        ConfigFileError: If the file cannot be written.
    """
    config_path = Path(path) if path else get_config_file()
    tmp_path = config_path.with_name(f"{config_path.name}.tmp.{os.getpid()}")
    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(config, f, default_flow_style=False, sort_keys=True)
        os.replace(tmp_path, config_path)
    except OSError as e:
        raise ConfigFileError(
            f"Failed to save configuration to {config_path}", details=str(e)
        ) from e
    logger.info(f"Configuration saved to {config_path}")
    return config_path


def get_max_retries(config: Dict[str, Any]) -> int:
    """
    Read MAX_FETCH_RETRIES; invalid values use the default, negatives clamp to 0.
    """
    raw_value = config.get(CONFIG_KEY_MAX_RETRIES, DEFAULT_FETCH_RETRIES)
    try:
        parsed_value = int(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid %s value %r; using default %d",
            CONFIG_KEY_MAX_RETRIES,
            raw_value,
            DEFAULT_FETCH_RETRIES,
        )
        return DEFAULT_FETCH_RETRIES

    if parsed_value < 0:
        logger.warning(
            "%s must be >= 0; clamping %d to 0", CONFIG_KEY_MAX_RETRIES, parsed_value
        )
        return 0
    return parsed_value


def get_backoff_step(config: Dict[str, Any]) -> float:
    """
    Read FETCH_BACKOFF_STEP in seconds; invalid values use the default,
    negatives clamp to 0.0.
    """
    raw_value = config.get(CONFIG_KEY_BACKOFF_STEP, DEFAULT_BACKOFF_STEP)
    try:
        parsed_value = float(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid %s value %r; using default %.2f",
            CONFIG_KEY_BACKOFF_STEP,
            raw_value,
            DEFAULT_BACKOFF_STEP,
        )
        return DEFAULT_BACKOFF_STEP

    if parsed_value < 0.0:
        logger.warning(
            "%s must be >= 0.0; clamping %.3f to 0.0",
            CONFIG_KEY_BACKOFF_STEP,
            parsed_value,
        )
        return 0.0
    return parsed_value


def get_max_concurrent(config: Dict[str, Any]) -> Optional[int]:
    """
    Read MAX_CONCURRENT_FETCHES. Missing, null or invalid means unbounded;
    values below 1 clamp to 1.
    """
    raw_value = config.get(CONFIG_KEY_MAX_CONCURRENT)
    if raw_value is None:
        return None
    try:
        parsed_value = int(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid %s value %r; fetching without a concurrency limit",
            CONFIG_KEY_MAX_CONCURRENT,
            raw_value,
        )
        return None

    if parsed_value < 1:
        logger.warning(
            "%s must be >= 1; clamping %d to 1", CONFIG_KEY_MAX_CONCURRENT, parsed_value
        )
        return 1
    return parsed_value


def get_request_timeout(config: Dict[str, Any]) -> float:
    raw_value = config.get(CONFIG_KEY_REQUEST_TIMEOUT, DEFAULT_REQUEST_TIMEOUT)
    try:
        parsed_value = float(raw_value)
    except (TypeError, ValueError):
        logger.warning(
            "Invalid %s value %r; using default %d",
            CONFIG_KEY_REQUEST_TIMEOUT,
            raw_value,
            DEFAULT_REQUEST_TIMEOUT,
        )
        return float(DEFAULT_REQUEST_TIMEOUT)
    if parsed_value <= 0:
        logger.warning(
            "%s must be > 0; using default %d",
            CONFIG_KEY_REQUEST_TIMEOUT,
            DEFAULT_REQUEST_TIMEOUT,
        )
        return float(DEFAULT_REQUEST_TIMEOUT)
    return parsed_value


def get_install_dir(config: Dict[str, Any]) -> Path:
    """INSTALL_DIR with `~` expanded, or the platform's default game directory."""
    raw_value = config.get(CONFIG_KEY_INSTALL_DIR)
    if raw_value:
        return Path(os.path.expanduser(str(raw_value)))
    return default_game_dir()


def fetch_config_from(config: Dict[str, Any]) -> FetchConfig:
    """Build the FetchConfig for a run from a configuration mapping."""
    return FetchConfig(
        max_retries=get_max_retries(config),
        backoff_step=get_backoff_step(config),
        max_concurrent=get_max_concurrent(config),
    )
