"""
Projection-aware spatial overlay selection.

Selects the features of one or more layers that intersect a region of
interest. The region is either a buffer around a point or a caller-supplied
polygon. Everything is reprojected into the UTM zone of the query before the
intersection test:

1. Build the query geometry (buffer the point in its own CRS, or take the polygon)
2. Derive the UTM CRS from the query longitude
3. Reproject the query geometry and every layer into that CRS
4. Keep the features that intersect the query geometry, preserving order

The point buffer distance is expressed in the units of the point's original
CRS (decimal degrees for geographic input) and the buffer is constructed
before reprojection.
"""

import logging
import math
import warnings
from collections.abc import Mapping
from dataclasses import dataclass, field

import geopandas as gpd
from pyproj import CRS
from pyproj.exceptions import CRSError
from shapely.geometry import Point
from shapely.geometry.base import BaseGeometry

from nhdquery.core.projection import geometry_longitude, utm_crs

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_DIST = 0.05


class QueryError(Exception):
    """Base class for errors raised while validating a query."""

    pass


class InvalidQuerySpecification(QueryError):
    """Raised when a query names both a point and a polygon, or neither."""

    pass


class InvalidGeometry(QueryError):
    """Raised when a query geometry or its CRS is missing or unusable, including a non-positive point buffer."""

    pass


@dataclass(frozen=True)
class PointQuery:
    """A point plus a buffer distance in the point CRS units."""

    lon: float
    lat: float
    crs: CRS | str | None
    buffer_dist: float = DEFAULT_BUFFER_DIST


@dataclass(frozen=True)
class PolygonQuery:
    """A polygon used directly as the region of interest."""

    geometry: BaseGeometry | None
    crs: CRS | str | None

    @classmethod
    def from_geoseries(cls, series: gpd.GeoSeries) -> "PolygonQuery":
        """Dissolve a GeoSeries (or GeoDataFrame) into a single query polygon."""
        if len(series) == 0:
            return cls(geometry=None, crs=series.crs)
        return cls(geometry=series.geometry.union_all(), crs=series.crs)


QueryGeometry = PointQuery | PolygonQuery


@dataclass(frozen=True)
class SingleLayer:
    """One unnamed feature layer."""

    layer: gpd.GeoDataFrame


@dataclass(frozen=True)
class NamedLayers:
    """Feature layers keyed by dataset name."""

    layers: Mapping[str, gpd.GeoDataFrame]


LayerInput = SingleLayer | NamedLayers


@dataclass
class OverlayResult:
    """
    Result of an overlay selection.

    Attributes:
        layers: Filtered GeoDataFrame for SingleLayer input, or a dict of
            filtered GeoDataFrames keyed like the NamedLayers input
        crs: UTM PROJ string every output geometry is expressed in
        point: Reprojected query point (point queries only)
        counts: Number of selected features per layer name, under the key
            "layer" for SingleLayer input
    """

    layers: gpd.GeoDataFrame | dict[str, gpd.GeoDataFrame]
    crs: str
    point: gpd.GeoSeries | None = None
    counts: dict[str, int] = field(default_factory=dict)


def resolve_query(
    lon: float | None = None,
    lat: float | None = None,
    poly: BaseGeometry | gpd.GeoSeries | None = None,
    crs: CRS | str | None = None,
    buffer_dist: float = DEFAULT_BUFFER_DIST,
) -> QueryGeometry:
    """
    Turn loose caller arguments into exactly one query variant.

    A point needs both lon and lat. Supplying a point and a polygon, or
    neither, is rejected before any other work happens.

    Args:
        lon: Longitude of the query point
        lat: Latitude of the query point
        poly: Shapely polygon, or a GeoSeries/GeoDataFrame carrying its own CRS
        crs: CRS of lon/lat, or of poly when poly is a bare Shapely geometry
        buffer_dist: Point buffer distance in units of crs

    Returns:
        PointQuery or PolygonQuery

    Raises:
        InvalidQuerySpecification: If both or neither of point and polygon are given
    """
    has_point = lon is not None and lat is not None
    has_poly = poly is not None

    if has_point and has_poly:
        raise InvalidQuerySpecification("Must specify either lon and lat or poly but not both.")
    if not has_point and not has_poly:
        raise InvalidQuerySpecification("Must specify either lon and lat or poly.")

    if has_point:
        return PointQuery(lon=lon, lat=lat, crs=crs, buffer_dist=buffer_dist)

    if isinstance(poly, gpd.GeoSeries | gpd.GeoDataFrame):
        if poly.crs is None and crs is not None:
            poly = poly.set_crs(crs)
        return PolygonQuery.from_geoseries(poly)

    return PolygonQuery(geometry=poly, crs=crs)


def as_layer_input(layers: LayerInput | gpd.GeoDataFrame | Mapping[str, gpd.GeoDataFrame]) -> LayerInput:
    """Wrap a bare GeoDataFrame or mapping of GeoDataFrames in its LayerInput variant."""
    if isinstance(layers, SingleLayer | NamedLayers):
        return layers
    if isinstance(layers, gpd.GeoDataFrame):
        return SingleLayer(layers)
    if isinstance(layers, Mapping):
        return NamedLayers(dict(layers))
    raise TypeError(f"Unsupported layer input: {type(layers)}")


def select_point_overlay(
    query: PointQuery,
    layers: LayerInput | gpd.GeoDataFrame | Mapping[str, gpd.GeoDataFrame],
) -> OverlayResult:
    """
    Select features within a buffer around a point.

    Args:
        query: Point, its CRS and the buffer distance (in CRS units)
        layers: One layer or a mapping of layer name to layer

    Returns:
        OverlayResult with the reprojected point and filtered layers

    Raises:
        InvalidGeometry: If the point or its CRS is unusable, the buffer distance is
            not positive, or a layer has no CRS

    Example:
        >>> query = PointQuery(lon=-85.41, lat=42.40, crs="EPSG:4269", buffer_dist=0.05)
        >>> result = select_point_overlay(query, {"NHDWaterbody": waterbodies})
        >>> result.layers["NHDWaterbody"]
    """
    source_crs = validate_query(query)
    layer_input = as_layer_input(layers)
    _validate_layers(layer_input)

    point = gpd.GeoSeries([Point(query.lon, query.lat)], crs=source_crs)

    # Buffer in the original angular units; geopandas warns about this on purpose
    with warnings.catch_warnings():
        warnings.filterwarnings("ignore", message="Geometry is in a geographic CRS", category=UserWarning)
        point_buffer = point.buffer(query.buffer_dist)

    crs = utm_crs(geometry_longitude(point.iloc[0], source_crs))

    point = point.to_crs(crs)
    query_geom = point_buffer.to_crs(crs).iloc[0]

    logger.info(f"Point overlay at ({query.lon}, {query.lat}) with buffer {query.buffer_dist} in {crs}")

    return _filter_layers(layer_input, query_geom, crs, point=point)


def select_poly_overlay(
    query: PolygonQuery,
    layers: LayerInput | gpd.GeoDataFrame | Mapping[str, gpd.GeoDataFrame],
) -> OverlayResult:
    """
    Select features intersecting a polygon.

    No buffering is performed; the polygon is only reprojected.

    Args:
        query: Polygon and its CRS
        layers: One layer or a mapping of layer name to layer

    Returns:
        OverlayResult with filtered layers and no point

    Raises:
        InvalidGeometry: If the polygon or its CRS is missing, or a layer has no CRS
    """
    source_crs = validate_query(query)
    layer_input = as_layer_input(layers)
    _validate_layers(layer_input)

    crs = utm_crs(geometry_longitude(query.geometry, source_crs))
    query_geom = gpd.GeoSeries([query.geometry], crs=source_crs).to_crs(crs).iloc[0]

    logger.info(f"Polygon overlay in {crs}")

    return _filter_layers(layer_input, query_geom, crs)


def select_overlay(
    query: QueryGeometry,
    layers: LayerInput | gpd.GeoDataFrame | Mapping[str, gpd.GeoDataFrame],
) -> OverlayResult:
    """Run the overlay variant matching the query type."""
    if isinstance(query, PointQuery):
        return select_point_overlay(query, layers)
    if isinstance(query, PolygonQuery):
        return select_poly_overlay(query, layers)
    raise InvalidQuerySpecification(f"Unsupported query type: {type(query).__name__}")


def validate_query(query: QueryGeometry) -> CRS:
    """
    Check a query before any data is touched.

    Returns:
        The parsed CRS of the query geometry

    Raises:
        InvalidGeometry: If the geometry or CRS is missing or unusable, or a point
            buffer distance is not positive
    """
    source_crs = _validate_crs(query.crs)

    if isinstance(query, PointQuery):
        if query.lon is None or query.lat is None or not (math.isfinite(query.lon) and math.isfinite(query.lat)):
            raise InvalidGeometry(f"Query point ({query.lon}, {query.lat}) is not finite")
        if query.buffer_dist <= 0:
            raise InvalidGeometry(f"buffer_dist must be positive, got {query.buffer_dist}")
    elif query.geometry is None or query.geometry.is_empty:
        raise InvalidGeometry("Query polygon is missing or empty")

    return source_crs


def _validate_crs(crs: CRS | str | None) -> CRS:
    if crs is None:
        raise InvalidGeometry("Query geometry has no CRS")
    try:
        return CRS.from_user_input(crs)
    except CRSError as e:
        raise InvalidGeometry(f"Query geometry has an invalid CRS: {e}") from e


def _validate_layers(layer_input: LayerInput) -> None:
    if isinstance(layer_input, SingleLayer):
        named = {"layer": layer_input.layer}
    else:
        named = layer_input.layers

    for name, layer in named.items():
        if layer.crs is None:
            raise InvalidGeometry(f"Layer '{name}' has no CRS")


def _select_intersecting(layer: gpd.GeoDataFrame, query_geom: BaseGeometry, crs: str) -> gpd.GeoDataFrame:
    projected = layer.to_crs(crs)
    return projected[projected.intersects(query_geom)]


def _filter_layers(
    layer_input: LayerInput,
    query_geom: BaseGeometry,
    crs: str,
    point: gpd.GeoSeries | None = None,
) -> OverlayResult:
    if isinstance(layer_input, SingleLayer):
        selected = _select_intersecting(layer_input.layer, query_geom, crs)
        logger.debug(f"  Kept {len(selected)} of {len(layer_input.layer)} features")
        return OverlayResult(layers=selected, crs=crs, point=point, counts={"layer": len(selected)})

    filtered: dict[str, gpd.GeoDataFrame] = {}
    for name, layer in layer_input.layers.items():
        filtered[name] = _select_intersecting(layer, query_geom, crs)
        logger.debug(f"  {name}: kept {len(filtered[name])} of {len(layer)} features")

    return OverlayResult(
        layers=filtered,
        crs=crs,
        point=point,
        counts={name: len(layer) for name, layer in filtered.items()},
    )
