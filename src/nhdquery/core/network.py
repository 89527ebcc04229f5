"""
Terminal and leaf reach classification over a flow-connectivity table.

A flow table is an edge list of (fromcomid, tocomid) pairs. The identifier 0
is a sentinel meaning "outside the modeled domain": tocomid == 0 marks an
outlet, and fromcomid == 0 should not occur but is tolerated and ignored.

Every graph step works on sets of comids (key-based joins), never on the
positions of rows in differently sized derived tables.
"""

import logging
from collections.abc import Iterable

import geopandas as gpd
import pandas as pd

logger = logging.getLogger(__name__)

SENTINEL_COMID = 0
FLOW_COLUMNS = ("fromcomid", "tocomid")


def normalize_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Return a copy of a (Geo)DataFrame with lower-cased column names.

    NHDPlus distributions disagree on column case (COMID, ComID, comid,
    FROMCOMID, ...). Joins in this module always use lower case.
    """
    if isinstance(frame, gpd.GeoDataFrame):
        geometry_name = frame.geometry.name
        if geometry_name != geometry_name.lower():
            frame = frame.rename_geometry(geometry_name.lower())
        geometry_name = frame.geometry.name
        return frame.rename(columns={c: c.lower() for c in frame.columns if c != geometry_name})

    return frame.rename(columns={c: c.lower() for c in frame.columns})


def _as_comid_set(comids: Iterable[int]) -> set[int]:
    return {int(c) for c in comids if pd.notna(c)}


def _prepare_flow_table(flow_table: pd.DataFrame) -> pd.DataFrame:
    flow = normalize_columns(flow_table)
    missing = [c for c in FLOW_COLUMNS if c not in flow.columns]
    if missing:
        raise ValueError(f"Flow table is missing columns {missing}. Available columns: {flow.columns.tolist()}")
    return flow


def _reach_comids(network: gpd.GeoDataFrame) -> tuple[gpd.GeoDataFrame, set[int]]:
    lines = normalize_columns(network)
    if "comid" not in lines.columns:
        raise ValueError(f"Reach layer has no 'comid' column. Available columns: {lines.columns.tolist()}")
    return lines, _as_comid_set(lines["comid"])


def filter_flow_table(flow_table: pd.DataFrame, comids: Iterable[int]) -> pd.DataFrame:
    """
    Restrict a flow table to the edges touching a reach set.

    Args:
        flow_table: Edge list with fromcomid/tocomid columns (any case)
        comids: Reach set of interest

    Returns:
        Edges whose fromcomid or tocomid is in the reach set, with
        lower-cased column names and a fresh index

    Raises:
        ValueError: If the flow table lacks fromcomid or tocomid
    """
    flow = _prepare_flow_table(flow_table)
    reach_set = _as_comid_set(comids)

    mask = flow["fromcomid"].isin(reach_set) | flow["tocomid"].isin(reach_set)
    focal = flow[mask].reset_index(drop=True)

    logger.debug(f"Filtered flow table from {len(flow)} to {len(focal)} edges for {len(reach_set)} reaches")
    return focal


def find_terminal_comids(flow_table: pd.DataFrame, comids: Iterable[int]) -> set[int]:
    """
    Find the reaches that act as outlets of the local subgraph.

    Edges starting at the sentinel are discarded first. A sink edge is a
    focal edge whose tocomid never appears as a focal fromcomid. A sink is
    kept only when an edge immediately upstream of it starts at a real
    reach; isolated single-edge fragments with no traceable upstream flow
    are dropped.

    Args:
        flow_table: Full or pre-filtered flow table
        comids: Reach set of interest

    Returns:
        Set of terminal comids (never contains the sentinel)
    """
    reach_set = _as_comid_set(comids)
    focal = filter_flow_table(flow_table, reach_set)
    focal = focal[focal["fromcomid"] != SENTINEL_COMID]
    if focal.empty:
        return set()

    focal_from = set(focal["fromcomid"])
    sinks = focal[~focal["tocomid"].isin(focal_from)]

    # find nodes with no downstream connections and at least one upstream connection
    upstream = focal[focal["tocomid"].isin(set(sinks["fromcomid"]))]
    fed = set(upstream["tocomid"])

    terminal = {int(c) for c in sinks["fromcomid"] if c in fed} - {SENTINEL_COMID}
    logger.info(f"Found {len(terminal)} terminal reach(es) among {len(sinks)} sink edge(s)")
    return terminal


def find_leaf_comids(flow_table: pd.DataFrame, comids: Iterable[int]) -> set[int]:
    """
    Find the headwater entry points of the local subgraph.

    Candidates are the reaches of the set that start a focal edge. Every edge
    of the full table that flows into a candidate is an inflow edge; when both
    of its endpoints belong to the reach set the candidate has an upstream
    continuation inside the subgraph and is not a leaf. Inflow from outside
    the reach set, or from nowhere at all, leaves the candidate a leaf. Edges
    touching the sentinel never count.

    Args:
        flow_table: Full (unfiltered) flow table
        comids: Reach set of interest

    Returns:
        Set of leaf comids (never contains the sentinel)
    """
    flow = _prepare_flow_table(flow_table)
    reach_set = _as_comid_set(comids) - {SENTINEL_COMID}
    focal = filter_flow_table(flow, reach_set)
    if focal.empty:
        return set()

    candidates = set(focal["fromcomid"]) & reach_set

    inflow = flow[flow["tocomid"].isin(candidates)]
    inflow = inflow[(inflow["fromcomid"] != SENTINEL_COMID) & (inflow["tocomid"] != SENTINEL_COMID)]
    internal = inflow[inflow["fromcomid"].isin(reach_set)]

    leaves = {int(c) for c in candidates - set(internal["tocomid"])}
    logger.info(f"Found {len(leaves)} leaf reach(es) among {len(candidates)} source candidate(s)")
    return leaves


def terminal_reaches(network: gpd.GeoDataFrame, flow_table: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Return the outlet reaches of a flowline layer.

    Args:
        network: Flowline layer with a comid column (any case)
        flow_table: Flow table covering the layer's watershed unit

    Returns:
        Rows of the column-normalised layer whose comid is terminal; empty
        (same columns) when no edges touch the layer

    Example:
        >>> t_reach = terminal_reaches(flowlines, plusflow)
        >>> t_reach.comid.tolist()
    """
    lines, reach_set = _reach_comids(network)
    terminal = find_terminal_comids(flow_table, reach_set)
    return lines[lines["comid"].isin(terminal)]


def leaf_reaches(network: gpd.GeoDataFrame, flow_table: pd.DataFrame) -> gpd.GeoDataFrame:
    """
    Return the headwater reaches of a flowline layer.

    Args:
        network: Flowline layer with a comid column (any case)
        flow_table: Full flow table covering the layer's watershed unit

    Returns:
        Rows of the column-normalised layer whose comid is a leaf
    """
    lines, reach_set = _reach_comids(network)
    leaves = find_leaf_comids(flow_table, reach_set)
    return lines[lines["comid"].isin(leaves)]
