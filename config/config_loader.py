# config/config_loader.py
# -*- coding: utf-8 -*-
"""
Builds the AppSettings used by the feed loader commands.

Sources, lowest precedence first:
1. Pydantic model defaults
2. Environment variables (``PG_*`` and ``FEED_*``, read by BaseSettings)
3. The YAML configuration file, when present
4. Command-line arguments
"""

import argparse
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .config_models import AppSettings

module_logger = logging.getLogger(__name__)

# CLI destination -> (section in AppSettings, field name). Section None is top level.
CLI_ARG_MAP: Dict[str, Tuple[Optional[str], str]] = {
    "pghost": ("pg", "host"),
    "pgport": ("pg", "port"),
    "pgdatabase": ("pg", "database"),
    "pguser": ("pg", "user"),
    "pgpassword": ("pg", "password"),
    "data_dir": ("feeds", "data_dir"),
    "log_prefix": (None, "log_prefix"),
    "metrics_file": (None, "metrics_file"),
}


def _deep_update(
    source: Dict[str, Any], overrides: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Merge ``overrides`` into ``source`` in place and return it.

    Nested dictionaries are merged key by key. A None in ``overrides`` never
    replaces an existing value, so unset CLI flags leave lower layers alone.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(source.get(key), dict):
            _deep_update(source[key], value)
        elif value is not None or key not in source:
            source[key] = value
    return source


def _read_yaml_config(
    yaml_config_path: Path, logger_to_use: logging.Logger
) -> Dict[str, Any]:
    if not yaml_config_path.is_file():
        logger_to_use.info(
            f"No config file at '{yaml_config_path}'; using defaults, environment and CLI."
        )
        return {}

    try:
        with open(yaml_config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
    except (yaml.YAMLError, OSError) as e:
        logger_to_use.warning(
            f"Ignoring config file '{yaml_config_path}': {e}"
        )
        return {}

    if yaml_data is None:
        return {}
    if not isinstance(yaml_data, dict):
        logger_to_use.warning(
            f"Ignoring config file '{yaml_config_path}': top level is not a mapping."
        )
        return {}
    logger_to_use.info(f"Loaded configuration from {yaml_config_path}")
    return yaml_data


def _cli_overrides(cli_args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for cli_key, cli_value in vars(cli_args).items():
        if cli_value is None or cli_key not in CLI_ARG_MAP:
            continue
        section, field_name = CLI_ARG_MAP[cli_key]
        if section is None:
            overrides[field_name] = cli_value
        else:
            overrides.setdefault(section, {})[field_name] = cli_value
    return overrides


def load_app_settings(
    cli_args: Optional[argparse.Namespace] = None,
    config_file_path: Union[str, Path] = "config.yaml",
    current_logger: Optional[logging.Logger] = None,
) -> AppSettings:
    """
    Resolve the application settings from every source.

    Args:
        cli_args: Parsed command-line arguments (from argparse).
        config_file_path: Path to the YAML configuration file.
        current_logger: Optional logger to use instead of the module logger.

    Returns:
        The validated AppSettings.

    Raises:
        SystemExit: If the merged configuration does not validate.
    """
    logger_to_use = current_logger if current_logger else module_logger

    env_settings = AppSettings()
    merged = env_settings.model_dump()
    # Excluded from dumps, so carry it over explicitly.
    merged["pg"]["password"] = env_settings.pg.password

    _deep_update(merged, _read_yaml_config(Path(config_file_path), logger_to_use))
    if cli_args:
        _deep_update(merged, _cli_overrides(cli_args))

    try:
        settings = AppSettings(**merged)
    except ValidationError as e:
        logger_to_use.error(f"Configuration validation failed: {e}")
        raise SystemExit(f"Configuration error: {e}") from e

    logger_to_use.debug(
        f"Settings resolved: database {settings.pg.database}@{settings.pg.host}, "
        f"data directory {settings.feeds.data_dir}"
    )
    return settings
