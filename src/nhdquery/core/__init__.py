"""
Core functionality for hydrography queries.

This module contains:
- UTM projection selection from a longitude
- Projection-aware overlay selection by point buffer or polygon
- Flow-table filtering and terminal/leaf reach classification
- Data loader protocols, local loaders and watershed unit lookup
- Query orchestration and output writing
"""

from .loaders import (
    FlowTableLoader,
    LocalFeatureLoader,
    LocalFlowTableLoader,
    RegionFeatureLoader,
    find_unit,
    load_units,
)
from .network import (
    SENTINEL_COMID,
    filter_flow_table,
    find_leaf_comids,
    find_terminal_comids,
    leaf_reaches,
    normalize_columns,
    terminal_reaches,
)
from .output_writer import FailedQuery, OutputWriter
from .overlay import (
    InvalidGeometry,
    InvalidQuerySpecification,
    NamedLayers,
    OverlayResult,
    PointQuery,
    PolygonQuery,
    QueryError,
    QueryGeometry,
    SingleLayer,
    as_layer_input,
    resolve_query,
    select_overlay,
    select_point_overlay,
    select_poly_overlay,
    validate_query,
)
from .projection import geometry_longitude, long_to_utm_zone, utm_crs
from .query import DataSources, ReachKind, find_reaches, lake_network, network_unit, nhd_plus_query

__all__ = [
    # Projection
    "long_to_utm_zone",
    "utm_crs",
    "geometry_longitude",
    # Overlay
    "PointQuery",
    "PolygonQuery",
    "QueryGeometry",
    "SingleLayer",
    "NamedLayers",
    "OverlayResult",
    "as_layer_input",
    "resolve_query",
    "validate_query",
    "select_overlay",
    "select_point_overlay",
    "select_poly_overlay",
    # Errors
    "QueryError",
    "InvalidQuerySpecification",
    "InvalidGeometry",
    # Network
    "SENTINEL_COMID",
    "normalize_columns",
    "filter_flow_table",
    "find_terminal_comids",
    "find_leaf_comids",
    "terminal_reaches",
    "leaf_reaches",
    # Loaders
    "RegionFeatureLoader",
    "FlowTableLoader",
    "LocalFeatureLoader",
    "LocalFlowTableLoader",
    "load_units",
    "find_unit",
    # Orchestration
    "DataSources",
    "ReachKind",
    "nhd_plus_query",
    "lake_network",
    "network_unit",
    "find_reaches",
    # Output writing
    "FailedQuery",
    "OutputWriter",
]
