"""
Pytest configuration and shared fixtures for the test suite.

Provides a small synthetic hydrography around a lake in southwest Michigan
so overlay, reach and CLI tests run without real NHDPlus data:

- Waterbodies: the lake at the query point, a pond 0.03° east, a far lake
- Flowlines: two inflows (1, 4), a reach in the lake (2), the outflow (3)
  and an unrelated far reach (9)
- PlusFlow: 6 -> 1, 1 -> 2, 4 -> 2, 2 -> 3, 3 -> 5, 5 -> 0, 9 -> 0
- Units: two watershed units, "04" containing the lake and "05" to the east
"""

import logging
from pathlib import Path

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString, Polygon, box

LAKE_LON = -85.41
LAKE_LAT = 42.40


def make_square(center_lon: float, center_lat: float, size_deg: float) -> Polygon:
    """Create a square polygon centered at given coordinates."""
    half = size_deg / 2
    return box(center_lon - half, center_lat - half, center_lon + half, center_lat + half)


def make_waterbodies_gdf(crs: str = "EPSG:4269") -> gpd.GeoDataFrame:
    """Lake at the query point, a small pond nearby and a lake far away."""
    return gpd.GeoDataFrame(
        {
            "COMID": [101, 102, 103],
            "GNIS_NAME": ["Gull Lake", "Pond", "Far Lake"],
        },
        geometry=[
            make_square(LAKE_LON, LAKE_LAT, 0.01),
            make_square(LAKE_LON + 0.03, LAKE_LAT, 0.005),
            make_square(LAKE_LON + 0.5, LAKE_LAT, 0.01),
        ],
        crs=crs,
    )


def make_flowlines_gdf(crs: str = "EPSG:4269") -> gpd.GeoDataFrame:
    """Flowlines draining through the lake plus one far away reach."""
    return gpd.GeoDataFrame(
        {
            "COMID": [1, 4, 2, 3, 9],
            "GNIS_NAME": ["West Inlet", "South Inlet", "Gull Lake", "Outlet", "Elsewhere"],
        },
        geometry=[
            LineString([(LAKE_LON - 0.02, LAKE_LAT), (LAKE_LON, LAKE_LAT)]),
            LineString([(LAKE_LON, LAKE_LAT - 0.02), (LAKE_LON, LAKE_LAT)]),
            LineString([(LAKE_LON, LAKE_LAT), (LAKE_LON + 0.002, LAKE_LAT + 0.004)]),
            LineString([(LAKE_LON + 0.002, LAKE_LAT + 0.004), (LAKE_LON + 0.01, LAKE_LAT + 0.02)]),
            LineString([(LAKE_LON + 0.5, LAKE_LAT + 0.3), (LAKE_LON + 0.5, LAKE_LAT + 0.35)]),
        ],
        crs=crs,
    )


def make_plusflow_df() -> pd.DataFrame:
    """Flow table for make_flowlines_gdf, in NHDPlus column case."""
    return pd.DataFrame(
        {
            "FROMCOMID": [6, 1, 4, 2, 3, 5, 9],
            "TOCOMID": [1, 2, 2, 3, 5, 0, 0],
        }
    )


def make_units_gdf(crs: str = "EPSG:4269") -> gpd.GeoDataFrame:
    """Two adjacent watershed units."""
    return gpd.GeoDataFrame(
        {"UnitID": ["04", "05"]},
        geometry=[box(-90.0, 40.0, -84.0, 46.0), box(-84.0, 40.0, -78.0, 46.0)],
        crs=crs,
    )


@pytest.fixture(autouse=True)
def setup_logging() -> None:
    """Configure logging for tests."""
    logging.basicConfig(
        level=logging.WARNING,  # Reduce noise during tests
        format="%(name)s - %(levelname)s - %(message)s",
    )


@pytest.fixture(autouse=True)
def clear_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep user environment variables from leaking into tests."""
    monkeypatch.delenv("NHDQUERY_DATA_DIR", raising=False)
    monkeypatch.delenv("NHDQUERY_LOG_FILE", raising=False)


@pytest.fixture
def gull_lake_point() -> tuple[float, float]:
    """Return (lon, lat) of the point on the synthetic lake."""
    return (LAKE_LON, LAKE_LAT)


@pytest.fixture
def waterbodies_gdf() -> gpd.GeoDataFrame:
    return make_waterbodies_gdf()


@pytest.fixture
def flowlines_gdf() -> gpd.GeoDataFrame:
    return make_flowlines_gdf()


@pytest.fixture
def plusflow_df() -> pd.DataFrame:
    return make_plusflow_df()


@pytest.fixture
def units_gdf() -> gpd.GeoDataFrame:
    return make_units_gdf()


@pytest.fixture
def test_data_dir(tmp_path: Path) -> Path:
    """Create a temporary test data directory."""
    data_dir = tmp_path / "test_data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


@pytest.fixture
def nhd_data_dir(test_data_dir: Path) -> Path:
    """
    Write the synthetic hydrography to disk in the extracted data layout.

    Layout:
        test_data/units.gpkg
        test_data/04/NHDWaterbody.gpkg
        test_data/04/NHDFlowline.gpkg
        test_data/04/PlusFlow.csv
    """
    unit_dir = test_data_dir / "04"
    unit_dir.mkdir()

    make_units_gdf().to_file(test_data_dir / "units.gpkg", driver="GPKG")
    make_waterbodies_gdf().to_file(unit_dir / "NHDWaterbody.gpkg", driver="GPKG")
    make_flowlines_gdf().to_file(unit_dir / "NHDFlowline.gpkg", driver="GPKG")
    make_plusflow_df().to_csv(unit_dir / "PlusFlow.csv", index=False)

    return test_data_dir
