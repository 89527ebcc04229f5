"""
Query orchestration over NHDPlus-style hydrography.

Ties the collaborators together:
1. Resolve the query (point + buffer, or polygon) and validate it
2. Locate the watershed unit that contains it
3. Load the requested datasets for that unit
4. Run the overlay selection

and, for reach classification, loads the flow table of the unit that
contains a reach layer before running the terminal or leaf finder. When no
reach layer is supplied, the network is taken from the largest waterbody
near a coordinate (the lake the coordinate points at).

The CRS used to interpret bare lon/lat pairs is always passed in
explicitly through DataSources.reference_crs.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

import geopandas as gpd
from pyproj import CRS
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from nhdquery.core.loaders import FlowTableLoader, RegionFeatureLoader, find_unit
from nhdquery.core.network import leaf_reaches, normalize_columns, terminal_reaches
from nhdquery.core.overlay import (
    DEFAULT_BUFFER_DIST,
    InvalidQuerySpecification,
    OverlayResult,
    PointQuery,
    QueryError,
    resolve_query,
    select_overlay,
    validate_query,
)

logger = logging.getLogger(__name__)

DEFAULT_LAKE_BUFFER_DIST = 0.01
WATERBODY_DATASET = "NHDWaterbody"
FLOWLINE_DATASET = "NHDFlowline"


class ReachKind(str, Enum):
    """Topological reach classes."""

    TERMINAL = "terminal"
    LEAF = "leaf"


@dataclass
class DataSources:
    """
    Collaborators and reference data needed to answer a query.

    Attributes:
        feature_loader: Loads named feature layers per unit
        flow_loader: Loads the flow table per unit
        units: Watershed unit polygons used to locate queries
        unit_field: Column of units holding the unit identifier
        reference_crs: CRS used to interpret bare lon/lat pairs
    """

    feature_loader: RegionFeatureLoader
    flow_loader: FlowTableLoader
    units: gpd.GeoDataFrame
    unit_field: str
    reference_crs: CRS | str


def nhd_plus_query(
    datasets: Sequence[str],
    sources: DataSources,
    lon: float | None = None,
    lat: float | None = None,
    poly: BaseGeometry | gpd.GeoSeries | gpd.GeoDataFrame | None = None,
    buffer_dist: float = DEFAULT_BUFFER_DIST,
) -> OverlayResult:
    """
    Select features of several datasets by point buffer or polygon.

    Args:
        datasets: Dataset names to load, e.g. ["NHDWaterbody", "NHDFlowline"]
        sources: Loaders, units layer and reference CRS
        lon: Longitude of the query point (with lat)
        lat: Latitude of the query point (with lon)
        poly: Query polygon; a bare Shapely geometry is read in the reference CRS
        buffer_dist: Point buffer in units of the reference CRS (decimal degrees)

    Returns:
        OverlayResult keyed by dataset name

    Raises:
        InvalidQuerySpecification: If both or neither of point and polygon are given
        InvalidGeometry: If the query geometry or its CRS is unusable
        QueryError: If the query falls outside every watershed unit

    Example:
        >>> qry = nhd_plus_query(["NHDWaterbody", "NHDFlowline"], sources, lon=-85.41, lat=42.40)
        >>> qry.layers["NHDWaterbody"]
    """
    if not datasets:
        raise ValueError("At least one dataset must be requested")

    query = resolve_query(lon=lon, lat=lat, poly=poly, crs=sources.reference_crs, buffer_dist=buffer_dist)
    query_crs = validate_query(query)

    locator = Point(query.lon, query.lat) if isinstance(query, PointQuery) else query.geometry
    unit_id = find_unit(locator, query_crs, sources.units, sources.unit_field)

    layers = {name: sources.feature_loader.load(unit_id, name) for name in datasets}

    return select_overlay(query, layers)


def lake_network(
    lon: float,
    lat: float,
    sources: DataSources,
    lake_buffer_dist: float = DEFAULT_LAKE_BUFFER_DIST,
    waterbody_dataset: str = WATERBODY_DATASET,
    flowline_dataset: str = FLOWLINE_DATASET,
) -> gpd.GeoDataFrame:
    """
    Flowlines intersecting the largest waterbody near a coordinate.

    Waterbodies within lake_buffer_dist of the point are compared by area in
    the local UTM projection; the flowlines touching the largest one form
    the network.

    Returns:
        Flowline layer in UTM coordinates, empty when no waterbody is found
    """
    waterbodies = nhd_plus_query(
        [waterbody_dataset], sources, lon=lon, lat=lat, buffer_dist=lake_buffer_dist
    ).layers[waterbody_dataset]

    if waterbodies.empty:
        logger.warning(f"No waterbody found within {lake_buffer_dist} of ({lon}, {lat})")
        return gpd.GeoDataFrame({"comid": []}, geometry=gpd.GeoSeries([], crs=waterbodies.crs))

    # find lake polygon
    lake = waterbodies.iloc[[waterbodies.geometry.area.to_numpy().argmax()]]
    logger.info(f"Using largest of {len(waterbodies)} waterbodies ({lake.geometry.area.iloc[0] / 1e6:.2f} km²)")

    return nhd_plus_query([flowline_dataset], sources, poly=lake).layers[flowline_dataset]


def network_unit(network: gpd.GeoDataFrame, sources: DataSources) -> str:
    """Locate the watershed unit containing the centroid of a reach layer."""
    if network.crs is None:
        raise QueryError("Reach layer has no CRS")
    centroid = network.geometry.union_all().centroid
    return find_unit(centroid, network.crs, sources.units, sources.unit_field)


def find_reaches(
    kind: ReachKind | str,
    sources: DataSources,
    network: gpd.GeoDataFrame | None = None,
    lon: float | None = None,
    lat: float | None = None,
    lake_buffer_dist: float = DEFAULT_LAKE_BUFFER_DIST,
) -> gpd.GeoDataFrame:
    """
    Return the terminal or leaf reaches of a network.

    The network is either passed in directly or derived from the lake at
    (lon, lat) via lake_network().

    Args:
        kind: "terminal" or "leaf"
        sources: Loaders, units layer and reference CRS
        network: Flowline layer with a comid column
        lon: Longitude of a point on or near the lake
        lat: Latitude of a point on or near the lake
        lake_buffer_dist: Search radius for the lake, in reference CRS units

    Returns:
        Subset of the (column-normalised) network

    Raises:
        InvalidQuerySpecification: If both or neither of network and lon/lat are given
    """
    kind = ReachKind(kind)
    has_point = lon is not None and lat is not None

    if network is not None and has_point:
        raise InvalidQuerySpecification("Must specify either lon and lat or network but not both.")
    if network is None and not has_point:
        raise InvalidQuerySpecification("Must specify either lon and lat or network.")

    if network is None:
        network = lake_network(lon, lat, sources, lake_buffer_dist=lake_buffer_dist)

    if network.empty:
        logger.info("Reach layer is empty, nothing to classify")
        return normalize_columns(network)

    unit_id = network_unit(network, sources)
    flow_table = sources.flow_loader.load(unit_id)

    finder = terminal_reaches if kind is ReachKind.TERMINAL else leaf_reaches
    result = finder(network, flow_table)

    logger.info(f"Found {len(result)} {kind.value} reach(es) in a network of {len(network)}")
    return result
