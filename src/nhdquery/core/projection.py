"""
UTM projection selection for locally accurate overlay operations.

Geographic (degree-based) coordinates are not metric, so buffers, areas and
intersection tests are carried out in the UTM zone that contains the query.
The projected CRS is always expressed as a PROJ string on the WGS84 datum.
"""

import logging
import math

import numpy as np
from pyproj import CRS, Transformer
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)

UTM_ZONE_COUNT = 60
UTM_ZONE_WIDTH = 6  # degrees of longitude


def long_to_utm_zone(lon: float) -> int:
    """
    Compute the UTM zone index for a longitude.

    Uses floor((lon + 180) / 6) + 1, wrapped into [1, 60]. Longitude 180 is
    the same meridian as -180 and therefore lands in zone 1.

    Args:
        lon: Longitude in decimal degrees

    Returns:
        UTM zone number in the range 1-60

    Raises:
        ValueError: If lon is not a finite number

    Example:
        >>> long_to_utm_zone(-73.24189)
        18
    """
    if not math.isfinite(lon):
        raise ValueError(f"Longitude must be finite, got {lon}")

    zone_index = int(np.floor((lon + 180) / UTM_ZONE_WIDTH))
    return zone_index % UTM_ZONE_COUNT + 1


def utm_crs(lon: float) -> str:
    """
    Build the projected CRS string for the UTM zone containing a longitude.

    The string is consumed verbatim by pyproj; keep its format stable so
    overlay results are reproducible.

    Args:
        lon: Longitude in decimal degrees

    Returns:
        PROJ string, e.g. "+proj=utm +zone=18 +datum=WGS84"
    """
    zone = long_to_utm_zone(lon)
    crs = f"+proj=utm +zone={zone} +datum=WGS84"
    logger.debug(f"Selected UTM zone {zone} for longitude {lon}")
    return crs


def geometry_longitude(geometry: BaseGeometry, crs: CRS | str) -> float:
    """
    Longitude of the first vertex of a geometry.

    Projected inputs are transformed back to geographic WGS84 first so the
    zone is always derived from degrees.

    Args:
        geometry: Any non-empty Shapely geometry
        crs: CRS the geometry's coordinates are expressed in

    Returns:
        Longitude in decimal degrees
    """
    x, y = _first_coordinate(geometry)

    source = CRS.from_user_input(crs)
    if source.is_geographic:
        return float(x)

    transformer = Transformer.from_crs(source, "EPSG:4326", always_xy=True)
    lon, _lat = transformer.transform(x, y)
    return float(lon)


def _first_coordinate(geometry: BaseGeometry) -> tuple[float, float]:
    """Return the first (x, y) vertex of a possibly multi-part geometry."""
    if hasattr(geometry, "geoms"):
        return _first_coordinate(geometry.geoms[0])
    if geometry.geom_type == "Polygon":
        return geometry.exterior.coords[0][:2]
    return geometry.coords[0][:2]
