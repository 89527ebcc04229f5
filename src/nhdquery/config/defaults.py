"""
Default values and environment variables for nhdquery configuration.

This module centralizes the default values, environment variable names
and dataset names used throughout the nhdquery CLI.
"""

# Default values for settings
DEFAULT_OUTPUT_DIR = "./output"
DEFAULT_DATA_DIR = "data"
DEFAULT_MAX_FAILS = None  # unlimited
DEFAULT_UNIT_FIELD = "UnitID"
DEFAULT_BUFFER_DIST = 0.05  # decimal degrees
DEFAULT_LAKE_BUFFER_DIST = 0.01  # decimal degrees

# Environment variable names
ENV_DATA_DIR = "NHDQUERY_DATA_DIR"
ENV_LOG_FILE = "NHDQUERY_LOG_FILE"

# Default datasets for overlay queries
DEFAULT_DATASETS = ["NHDWaterbody", "NHDFlowline"]
