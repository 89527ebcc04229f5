"""
Data loading collaborators for hydrography queries.

The query and reach-finding logic only depends on two small protocols:

- RegionFeatureLoader: load(unit_id, dataset_name) -> GeoDataFrame
- FlowTableLoader: load(unit_id) -> DataFrame of (fromcomid, tocomid)

This module also provides implementations that read an already extracted
data directory, plus a lookup of the watershed management unit (e.g. an
NHDPlus vector processing unit) that contains a query geometry. Nothing here
downloads data; missing files raise FileNotFoundError.

Expected layout:
- data_dir/<unit_id>/<dataset>.gpkg (or .shp, .geojson)
- data_dir/<unit_id>/PlusFlow.csv (or .dbf)
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Protocol

import geopandas as gpd
import pandas as pd
from pyproj import CRS
from shapely.geometry.base import BaseGeometry

from nhdquery.core.overlay import QueryError

logger = logging.getLogger(__name__)

FEATURE_SUFFIXES = (".gpkg", ".shp", ".geojson")
FLOW_TABLE_SUFFIXES = (".csv", ".dbf")
FLOW_TABLE_NAME = "PlusFlow"


class RegionFeatureLoader(Protocol):
    """Loads one named feature layer for a watershed management unit."""

    def load(self, unit_id: str, dataset_name: str) -> gpd.GeoDataFrame: ...


class FlowTableLoader(Protocol):
    """Loads the flow-connectivity table for a watershed management unit."""

    def load(self, unit_id: str) -> pd.DataFrame: ...


def _find_file(directory: Path, stem: str, suffixes: tuple[str, ...]) -> Path:
    """Return the first existing directory/stem<suffix>, matching the stem case-insensitively."""
    for suffix in suffixes:
        candidate = directory / f"{stem}{suffix}"
        if candidate.is_file():
            return candidate

    if directory.is_dir():
        wanted = {f"{stem}{suffix}".lower() for suffix in suffixes}
        for candidate in sorted(directory.iterdir()):
            if candidate.name.lower() in wanted:
                return candidate

    raise FileNotFoundError(
        f"Could not find {stem} with any of {list(suffixes)} in {directory}"
    )


class LocalFeatureLoader:
    """Reads feature layers from an extracted data directory."""

    def __init__(self, data_dir: Path):
        """
        Initialize loader with the data directory.

        Args:
            data_dir: Root directory holding one subdirectory per unit
        """
        self.data_dir = Path(data_dir)

    def load(self, unit_id: str, dataset_name: str) -> gpd.GeoDataFrame:
        """
        Load a dataset for a unit.

        Raises:
            FileNotFoundError: If the dataset file does not exist
            ValueError: If the layer has no CRS
        """
        path = _find_file(self.data_dir / str(unit_id), dataset_name, FEATURE_SUFFIXES)
        logger.info(f"Loading {dataset_name} for unit {unit_id} from {path}")

        gdf = gpd.read_file(path)
        if gdf.crs is None:
            raise ValueError(f"Layer {path} has no CRS")

        return gdf


class LocalFlowTableLoader:
    """Reads the PlusFlow table from an extracted data directory."""

    def __init__(self, data_dir: Path, table_name: str = FLOW_TABLE_NAME):
        self.data_dir = Path(data_dir)
        self.table_name = table_name

    def load(self, unit_id: str) -> pd.DataFrame:
        """
        Load the flow table for a unit.

        Raises:
            FileNotFoundError: If the table file does not exist
        """
        path = _find_file(self.data_dir / str(unit_id), self.table_name, FLOW_TABLE_SUFFIXES)
        logger.info(f"Loading flow table for unit {unit_id} from {path}")

        if path.suffix.lower() == ".csv":
            return pd.read_csv(path)

        # dbf tables come back without a usable geometry
        table = gpd.read_file(path)
        return pd.DataFrame(table.drop(columns="geometry", errors="ignore"))


@lru_cache(maxsize=4)
def _load_units_gdf(units_file: str) -> gpd.GeoDataFrame:
    """
    Load and cache the watershed units layer.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the layer has no CRS
    """
    units_path = Path(units_file)

    if not units_path.exists():
        raise FileNotFoundError(f"Units file not found: {units_file}")

    logger.info(f"Loading watershed units from: {units_file}")
    gdf = gpd.read_file(units_file)

    if gdf.crs is None:
        raise ValueError(f"Units file {units_file} has no CRS")

    return gdf


def load_units(units_file: str | Path) -> gpd.GeoDataFrame:
    """Load the watershed units layer (cached per path)."""
    return _load_units_gdf(str(units_file))


def find_unit(
    geometry: BaseGeometry,
    crs: CRS | str,
    units: gpd.GeoDataFrame,
    unit_field: str,
) -> str:
    """
    Find the watershed unit that contains a geometry.

    The geometry is reprojected into the units CRS and matched by
    intersection; when several units intersect (e.g. a polygon straddling a
    boundary) the first in layer order wins.

    Args:
        geometry: Point or polygon to locate
        crs: CRS of the geometry
        units: Units layer with a CRS
        unit_field: Column holding the unit identifier

    Returns:
        Unit identifier as a string

    Raises:
        ValueError: If unit_field is not a column of units
        QueryError: If no unit intersects the geometry
    """
    if unit_field not in units.columns:
        raise ValueError(
            f"Units layer does not contain '{unit_field}' column. Available columns: {units.columns.tolist()}"
        )

    located = gpd.GeoSeries([geometry], crs=crs).to_crs(units.crs).iloc[0]
    matches = units[units.geometry.intersects(located)]

    if matches.empty:
        raise QueryError(f"Geometry {located.wkt[:80]} does not fall within any watershed unit")

    unit_id = str(matches.iloc[0][unit_field])
    if len(matches) > 1:
        logger.debug(f"Geometry intersects {len(matches)} units, using {unit_id}")

    logger.info(f"Located watershed unit: {unit_id}")
    return unit_id
