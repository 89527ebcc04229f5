"""
Shared pytest fixtures for core module tests.

Provides in-memory loaders and small flow networks for testing overlay
and reach classification logic without touching the filesystem.
"""

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import LineString

from nhdquery.core import DataSources


class InMemoryFeatureLoader:
    """Feature loader serving GeoDataFrames from a dict, recording calls."""

    def __init__(self, layers: dict[tuple[str, str], gpd.GeoDataFrame]):
        self.layers = layers
        self.calls: list[tuple[str, str]] = []

    def load(self, unit_id: str, dataset_name: str) -> gpd.GeoDataFrame:
        self.calls.append((unit_id, dataset_name))
        try:
            return self.layers[(unit_id, dataset_name)].copy()
        except KeyError:
            raise FileNotFoundError(f"No {dataset_name} for unit {unit_id}") from None


class InMemoryFlowTableLoader:
    """Flow table loader serving DataFrames from a dict, recording calls."""

    def __init__(self, tables: dict[str, pd.DataFrame]):
        self.tables = tables
        self.calls: list[str] = []

    def load(self, unit_id: str) -> pd.DataFrame:
        self.calls.append(unit_id)
        try:
            return self.tables[unit_id].copy()
        except KeyError:
            raise FileNotFoundError(f"No flow table for unit {unit_id}") from None


def make_flow_table(edges: list[tuple[int, int]], upper: bool = False) -> pd.DataFrame:
    """
    Create a flow table from (fromcomid, tocomid) pairs.

    Args:
        edges: Directed edges; tocomid 0 marks an outlet
        upper: Use NHDPlus upper-case column names

    Returns:
        DataFrame with fromcomid/tocomid columns
    """
    columns = ("FROMCOMID", "TOCOMID") if upper else ("fromcomid", "tocomid")
    return pd.DataFrame(edges, columns=list(columns))


def make_network_gdf(comids: list[int], column: str = "comid") -> gpd.GeoDataFrame:
    """Create a reach layer with one short line per comid."""
    geometries = [LineString([(-85.0 + i * 0.01, 42.0), (-85.0 + i * 0.01, 42.01)]) for i in range(len(comids))]
    return gpd.GeoDataFrame({column: comids}, geometry=geometries, crs="EPSG:4269")


@pytest.fixture
def scenario_edges() -> list[tuple[int, int]]:
    """Two headwaters (1, 4) joining at 2, draining through 3 to the outlet."""
    return [(1, 2), (2, 3), (3, 0), (4, 2)]


@pytest.fixture
def feature_loader(waterbodies_gdf, flowlines_gdf) -> InMemoryFeatureLoader:
    return InMemoryFeatureLoader(
        {
            ("04", "NHDWaterbody"): waterbodies_gdf,
            ("04", "NHDFlowline"): flowlines_gdf,
        }
    )


@pytest.fixture
def flow_loader(plusflow_df) -> InMemoryFlowTableLoader:
    return InMemoryFlowTableLoader({"04": plusflow_df})


@pytest.fixture
def sources(feature_loader, flow_loader, units_gdf) -> DataSources:
    """DataSources backed by the synthetic lake hydrography."""
    return DataSources(
        feature_loader=feature_loader,
        flow_loader=flow_loader,
        units=units_gdf,
        unit_field="UnitID",
        reference_crs="EPSG:4269",
    )
