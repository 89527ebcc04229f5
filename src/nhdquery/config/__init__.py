"""
Configuration management for the nhdquery CLI.

This module provides Pydantic-based configuration schemas for validating
and loading TOML configuration files used by the nhdquery CLI.

Key exports:
- MasterConfig: Root configuration from nhdquery.toml
- SettingsConfig: Data locations, reference CRS and buffer defaults
- QueryConfig: Configuration for a single query
- load_config(): Load and validate master configuration
"""

from .defaults import (
    DEFAULT_BUFFER_DIST,
    DEFAULT_DATA_DIR,
    DEFAULT_DATASETS,
    DEFAULT_LAKE_BUFFER_DIST,
    DEFAULT_MAX_FAILS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_UNIT_FIELD,
    ENV_DATA_DIR,
    ENV_LOG_FILE,
)
from .schema import MasterConfig, QueryConfig, SettingsConfig, load_config, load_settings

__all__ = [
    # Main models
    "MasterConfig",
    "QueryConfig",
    "SettingsConfig",
    # Loaders
    "load_config",
    "load_settings",
    # Defaults
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_DATA_DIR",
    "DEFAULT_MAX_FAILS",
    "DEFAULT_UNIT_FIELD",
    "DEFAULT_BUFFER_DIST",
    "DEFAULT_LAKE_BUFFER_DIST",
    "DEFAULT_DATASETS",
    # Environment variables
    "ENV_DATA_DIR",
    "ENV_LOG_FILE",
]
