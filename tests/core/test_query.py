"""
Tests for query orchestration.

Uses in-memory loaders from tests/core/conftest.py so no files are read.
"""

from unittest.mock import patch

import geopandas as gpd
import pytest
from pyproj import CRS
from shapely.geometry import LineString, box

from nhdquery.core.overlay import InvalidQuerySpecification, QueryError
from nhdquery.core.query import (
    ReachKind,
    find_reaches,
    lake_network,
    network_unit,
    nhd_plus_query,
)

from .conftest import make_network_gdf


class TestNhdPlusQuery:
    """Tests for nhd_plus_query()."""

    def test_point_query(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        result = nhd_plus_query(["NHDWaterbody", "NHDFlowline"], sources, lon=lon, lat=lat)

        assert list(result.layers) == ["NHDWaterbody", "NHDFlowline"]
        assert result.layers["NHDWaterbody"]["COMID"].tolist() == [101, 102]
        assert result.layers["NHDFlowline"]["COMID"].tolist() == [1, 4, 2, 3]
        assert result.point is not None

    def test_loads_datasets_of_located_unit(self, sources, feature_loader, gull_lake_point):
        lon, lat = gull_lake_point
        nhd_plus_query(["NHDWaterbody", "NHDFlowline"], sources, lon=lon, lat=lat)

        assert feature_loader.calls == [("04", "NHDWaterbody"), ("04", "NHDFlowline")]

    def test_buffer_distance_passed_through(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        result = nhd_plus_query(["NHDWaterbody"], sources, lon=lon, lat=lat, buffer_dist=0.01)

        assert result.layers["NHDWaterbody"]["COMID"].tolist() == [101]

    def test_polygon_query(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        lake = box(lon - 0.005, lat - 0.005, lon + 0.005, lat + 0.005)

        result = nhd_plus_query(["NHDWaterbody"], sources, poly=lake)

        assert result.layers["NHDWaterbody"]["COMID"].tolist() == [101]
        assert result.point is None

    def test_polygon_located_by_its_geometry(self, sources, gull_lake_point):
        """Test the unit lookup receives the query polygon in its own CRS."""
        lon, lat = gull_lake_point
        lake = box(lon - 0.005, lat - 0.005, lon + 0.005, lat + 0.005)

        with patch("nhdquery.core.query.find_unit", return_value="04") as mock_find_unit:
            nhd_plus_query(["NHDWaterbody"], sources, poly=lake)

        located, crs, _units, unit_field = mock_find_unit.call_args.args
        assert located.equals(lake)
        assert crs == CRS.from_user_input("EPSG:4269")
        assert unit_field == "UnitID"

    def test_both_point_and_polygon(self, sources, feature_loader, gull_lake_point):
        """Test the query is rejected before any data is loaded."""
        lon, lat = gull_lake_point
        with pytest.raises(InvalidQuerySpecification):
            nhd_plus_query(["NHDWaterbody"], sources, lon=lon, lat=lat, poly=box(0, 0, 1, 1))
        assert feature_loader.calls == []

    def test_outside_every_unit(self, sources, feature_loader):
        with pytest.raises(QueryError, match="watershed unit"):
            nhd_plus_query(["NHDWaterbody"], sources, lon=0.0, lat=0.0)
        assert feature_loader.calls == []

    def test_unit_without_data(self, sources):
        with pytest.raises(FileNotFoundError):
            nhd_plus_query(["NHDWaterbody"], sources, lon=-83.0, lat=42.0)

    def test_no_datasets(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        with pytest.raises(ValueError, match="At least one dataset"):
            nhd_plus_query([], sources, lon=lon, lat=lat)


class TestLakeNetwork:
    """Tests for lake_network()."""

    def test_flowlines_of_largest_lake(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        network = lake_network(lon, lat, sources, lake_buffer_dist=0.05)

        # The pond is within reach but smaller, and touches no flowline
        assert network["COMID"].tolist() == [1, 4, 2, 3]

    def test_no_waterbody_nearby(self, sources):
        network = lake_network(-85.8, 42.8, sources)

        assert network.empty
        assert "comid" in network.columns


class TestNetworkUnit:
    """Tests for network_unit()."""

    def test_locates_unit(self, sources):
        assert network_unit(make_network_gdf([1, 2]), sources) == "04"

    def test_network_without_crs(self, sources):
        network = gpd.GeoDataFrame({"comid": [1]}, geometry=[LineString([(-85.0, 42.0), (-85.0, 42.01)])])
        with pytest.raises(QueryError, match="no CRS"):
            network_unit(network, sources)


class TestFindReaches:
    """Tests for find_reaches()."""

    def test_terminal_from_point(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        result = find_reaches(ReachKind.TERMINAL, sources, lon=lon, lat=lat)

        assert result["comid"].tolist() == [3]

    def test_leaf_from_point(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        result = find_reaches("leaf", sources, lon=lon, lat=lat)

        assert sorted(result["comid"]) == [1, 4]

    def test_leaf_and_terminal_disjoint(self, sources, gull_lake_point):
        lon, lat = gull_lake_point
        terminal = set(find_reaches("terminal", sources, lon=lon, lat=lat)["comid"])
        leaves = set(find_reaches("leaf", sources, lon=lon, lat=lat)["comid"])

        assert terminal.isdisjoint(leaves)

    def test_from_network(self, sources, flowlines_gdf, flow_loader):
        network = flowlines_gdf[flowlines_gdf["COMID"].isin([1, 4, 2, 3])]
        result = find_reaches("terminal", sources, network=network)

        assert result["comid"].tolist() == [3]
        assert flow_loader.calls == ["04"]

    def test_output_crs_matches_network(self, sources, flowlines_gdf):
        network = flowlines_gdf[flowlines_gdf["COMID"].isin([1, 4, 2, 3])]
        result = find_reaches("leaf", sources, network=network)

        assert result.crs == network.crs
        assert isinstance(result, gpd.GeoDataFrame)

    def test_empty_network(self, sources, flowlines_gdf, flow_loader):
        """Test an empty network returns an empty result without loading flow."""
        result = find_reaches("terminal", sources, network=flowlines_gdf.iloc[0:0])

        assert result.empty
        assert flow_loader.calls == []

    def test_no_lake_nearby(self, sources, flow_loader):
        result = find_reaches("leaf", sources, lon=-85.8, lat=42.8)

        assert result.empty
        assert flow_loader.calls == []

    def test_both_network_and_point(self, sources, flowlines_gdf, gull_lake_point):
        lon, lat = gull_lake_point
        with pytest.raises(InvalidQuerySpecification, match="but not both"):
            find_reaches("leaf", sources, network=flowlines_gdf, lon=lon, lat=lat)

    def test_neither_network_nor_point(self, sources):
        with pytest.raises(InvalidQuerySpecification):
            find_reaches("leaf", sources)

    def test_unknown_kind(self, sources, flowlines_gdf):
        with pytest.raises(ValueError):
            find_reaches("outlet", sources, network=flowlines_gdf)
