"""
Pydantic models for nhdquery configuration files.

This module defines the configuration schema for the nhdquery CLI using
Pydantic v2. It validates TOML configuration files and provides type-safe
access to configuration values.

The configuration hierarchy:
- MasterConfig (nhdquery.toml): global settings plus a list of queries
- SettingsConfig: data locations, reference CRS and default buffers
- QueryConfig: a single overlay, terminal-reach or leaf-reach query
"""

import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pyproj import CRS
from pyproj.exceptions import CRSError

from .defaults import (
    DEFAULT_BUFFER_DIST,
    DEFAULT_DATA_DIR,
    DEFAULT_DATASETS,
    DEFAULT_LAKE_BUFFER_DIST,
    DEFAULT_MAX_FAILS,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_UNIT_FIELD,
    ENV_DATA_DIR,
)

logger = logging.getLogger(__name__)


class QueryConfig(BaseModel):
    """
    Configuration for a single query.

    Overlay queries take either a point (lon/lat) or a polygon file. Reach
    queries (terminal, leaf) take either a point near a lake or a reach
    layer file. Coordinates are read in the reference CRS of the settings.
    """

    name: str = Field(..., description="Query name, used as the output file stem")
    kind: Literal["overlay", "terminal", "leaf"] = Field(default="overlay", description="Query kind")
    lon: float | None = Field(default=None, ge=-180, le=180, description="Longitude in decimal degrees")
    lat: float | None = Field(default=None, ge=-90, le=90, description="Latitude in decimal degrees")
    polygon: str | None = Field(default=None, description="Path to a polygon file (overlay only)")
    network: str | None = Field(default=None, description="Path to a reach layer file (terminal/leaf only)")
    datasets: list[str] = Field(
        default_factory=lambda: list(DEFAULT_DATASETS), description="Datasets to select from (overlay only)"
    )
    buffer_dist: float | None = Field(
        default=None, gt=0, description="Buffer distance override in reference CRS units"
    )

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """
        Validate query name is a valid identifier.

        Names become file names, so they are restricted to letters, numbers
        and underscores.
        """
        if not v or not v.strip():
            raise ValueError("Query name cannot be empty")

        v = v.strip()

        if not re.match(r"^[a-zA-Z][a-zA-Z0-9_]*$", v):
            raise ValueError(
                f"Query name '{v}' must be a valid identifier "
                "(start with letter, contain only letters, numbers, and underscores)"
            )

        return v

    @field_validator("datasets")
    @classmethod
    def validate_datasets(cls, v: list[str]) -> list[str]:
        """Ensure datasets are non-empty and stripped."""
        v = [d.strip() for d in v]
        if not v or any(not d for d in v):
            raise ValueError("datasets must contain at least one non-empty name")
        return v

    @model_validator(mode="after")
    def validate_location(self) -> "QueryConfig":
        """Ensure exactly one way of locating the query is given."""
        if (self.lon is None) != (self.lat is None):
            raise ValueError(f"Query '{self.name}': lon and lat must be given together")

        has_point = self.lon is not None

        if self.kind == "overlay":
            if self.network is not None:
                raise ValueError(f"Query '{self.name}': network is only valid for terminal/leaf queries")
            if has_point == (self.polygon is not None):
                raise ValueError(f"Query '{self.name}': must specify either lon and lat or polygon but not both")
        else:
            if self.polygon is not None:
                raise ValueError(f"Query '{self.name}': polygon is only valid for overlay queries")
            if has_point == (self.network is not None):
                raise ValueError(f"Query '{self.name}': must specify either lon and lat or network but not both")

        return self


class SettingsConfig(BaseModel):
    """
    Global settings shared by all queries.

    reference_crs has no default: bare lon/lat pairs are always interpreted
    in an explicitly configured CRS.
    """

    output_dir: str = Field(default=DEFAULT_OUTPUT_DIR, description="Base directory for all outputs")
    data_dir: str | None = Field(
        default=None, description="Directory with extracted hydrography data (overrides NHDQUERY_DATA_DIR env var)"
    )
    units_file: str = Field(..., description="Watershed units layer; relative paths resolve against data_dir")
    unit_field: str = Field(default=DEFAULT_UNIT_FIELD, description="Column of the units layer holding unit IDs")
    reference_crs: str = Field(..., description="CRS of configured coordinates, e.g. EPSG:4269")
    buffer_dist: float = Field(default=DEFAULT_BUFFER_DIST, gt=0, description="Default point buffer distance")
    lake_buffer_dist: float = Field(
        default=DEFAULT_LAKE_BUFFER_DIST, gt=0, description="Search radius for the lake of reach queries"
    )
    max_fails: int | None = Field(default=DEFAULT_MAX_FAILS, description="Stop after N failures (None = unlimited)")

    @field_validator("output_dir", "units_file", "unit_field")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        """Validate string settings are not empty."""
        if not v or not v.strip():
            raise ValueError("value cannot be empty")
        return v.strip()

    @field_validator("reference_crs")
    @classmethod
    def validate_reference_crs(cls, v: str) -> str:
        """Ensure the reference CRS is understood by pyproj."""
        try:
            CRS.from_user_input(v)
        except CRSError as e:
            raise ValueError(f"Invalid reference_crs '{v}': {e}") from e
        return v.strip()

    @field_validator("max_fails")
    @classmethod
    def validate_max_fails(cls, v: int | None) -> int | None:
        """Ensure max_fails is positive if provided."""
        if v is not None and v <= 0:
            raise ValueError(f"max_fails must be positive, got {v}")
        return v

    def resolve_data_dir(self) -> Path:
        """Data directory from settings, then NHDQUERY_DATA_DIR, then the default."""
        if self.data_dir:
            return Path(self.data_dir).expanduser()
        if os.getenv(ENV_DATA_DIR):
            return Path(os.getenv(ENV_DATA_DIR)).expanduser()
        return Path(DEFAULT_DATA_DIR)

    def resolve_units_file(self) -> Path:
        """Units file path, resolved against the data directory when relative."""
        units_path = Path(self.units_file).expanduser()
        if units_path.is_absolute():
            return units_path
        return self.resolve_data_dir() / units_path


class MasterConfig(BaseModel):
    """
    Master configuration for the nhdquery CLI.

    This is the root configuration loaded from nhdquery.toml.
    """

    settings: SettingsConfig = Field(..., description="Global settings")
    queries: list[QueryConfig] = Field(..., description="Queries to run")

    @model_validator(mode="after")
    def validate_unique_query_names(self) -> "MasterConfig":
        """Ensure all query names are unique."""
        names = [query.name for query in self.queries]
        duplicates = [name for name in set(names) if names.count(name) > 1]

        if duplicates:
            raise ValueError(f"Duplicate query names found: {duplicates}")

        return self

    @model_validator(mode="after")
    def validate_at_least_one_query(self) -> "MasterConfig":
        """Ensure at least one query is configured."""
        if not self.queries:
            raise ValueError("At least one query must be configured")

        return self


def load_config(config_path: Path) -> MasterConfig:
    """
    Load and validate a master configuration file.

    Relative paths for data_dir and for query polygon/network files are
    resolved relative to the config file location.

    Args:
        config_path: Path to the configuration TOML file

    Returns:
        Validated MasterConfig instance with resolved paths

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the TOML file is malformed
        pydantic.ValidationError: If the configuration is invalid

    Example:
        >>> config = load_config(Path("nhdquery.toml"))
        >>> config.settings.reference_crs
        'EPSG:4269'
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in configuration file: {e}") from e

    config = MasterConfig.model_validate(data)

    config_dir = config_path.parent

    if config.settings.data_dir and not Path(config.settings.data_dir).expanduser().is_absolute():
        config.settings.data_dir = str((config_dir / config.settings.data_dir).resolve())

    for query in config.queries:
        for attr in ("polygon", "network"):
            value = getattr(query, attr)
            if value is not None and not Path(value).is_absolute():
                resolved_path = (config_dir / value).resolve()
                setattr(query, attr, str(resolved_path))
                logger.debug(f"Resolved {attr} path for query '{query.name}': {resolved_path}")

    logger.info(f"Successfully loaded configuration with {len(config.queries)} query(ies)")

    return config


def load_settings(config_path: Path) -> SettingsConfig:
    """
    Load only the [settings] table of a configuration file.

    Used by the ad hoc CLI commands, which take their query from options
    rather than from [[queries]].

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the TOML file is malformed or has no [settings] table
        pydantic.ValidationError: If the settings are invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in configuration file: {e}") from e

    if "settings" not in data:
        raise ValueError(f"Configuration file {config_path} has no [settings] table")

    settings = SettingsConfig.model_validate(data["settings"])

    if settings.data_dir and not Path(settings.data_dir).expanduser().is_absolute():
        settings.data_dir = str((config_path.parent / settings.data_dir).resolve())

    return settings
