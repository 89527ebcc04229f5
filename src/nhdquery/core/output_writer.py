"""
Output writer for query results.

Each query is written to its own GeoPackage with one layer per dataset
(plus the reprojected query point for point queries). Failures across a
batch run are collected and written to a single FAILED.csv.
"""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path

import geopandas as gpd

logger = logging.getLogger(__name__)

POINT_LAYER = "query_point"


@dataclass
class FailedQuery:
    """
    Record of a failed query.

    Attributes:
        name: Query name from the configuration
        kind: Query kind (overlay, terminal or leaf)
        error: Description of what went wrong
    """

    name: str
    kind: str
    error: str


class OutputWriter:
    """Writes query results and keeps a log of failed queries."""

    def __init__(self, output_dir: Path):
        """
        Initialize writer with output directory.

        Args:
            output_dir: Base directory for all outputs
        """
        self.output_dir = Path(output_dir)
        self.failed_queries: list[FailedQuery] = []

    def get_output_path(self, name: str) -> Path:
        """Path of the GeoPackage for a query."""
        return self.output_dir / f"{name}.gpkg"

    def check_output_exists(self, name: str) -> bool:
        """Check whether output for a query has already been written."""
        return self.get_output_path(name).exists()

    def write_query_output(
        self,
        name: str,
        layers: dict[str, gpd.GeoDataFrame],
        point: gpd.GeoSeries | None = None,
    ) -> Path:
        """
        Write the layers of one query to a GeoPackage.

        Existing files are replaced. Empty layers are skipped since they
        carry no geometry type to declare.

        Args:
            name: Query name, used as the file stem
            layers: Filtered layers keyed by dataset name
            point: Optional reprojected query point

        Returns:
            Path to the written GeoPackage

        Raises:
            ValueError: If there is nothing to write
        """
        non_empty = {layer_name: gdf for layer_name, gdf in layers.items() if not gdf.empty}

        for layer_name in layers.keys() - non_empty.keys():
            logger.warning(f"Skipping empty layer '{layer_name}' for query '{name}'")

        if not non_empty and point is None:
            raise ValueError(f"Cannot write output for query '{name}': all layers are empty")

        self.output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self.get_output_path(name)
        if output_path.exists():
            output_path.unlink()

        for layer_name, gdf in non_empty.items():
            gdf.to_file(output_path, layer=layer_name, driver="GPKG")
            logger.debug(f"  Wrote {len(gdf)} features to layer '{layer_name}'")

        if point is not None:
            point_gdf = gpd.GeoDataFrame({"name": [name] * len(point)}, geometry=point.reset_index(drop=True))
            point_gdf.to_file(output_path, layer=POINT_LAYER, driver="GPKG")

        logger.info(f"Successfully wrote {output_path}")
        return output_path

    def record_failure(self, name: str, kind: str, error: str) -> None:
        """
        Record a failed query for later writing to FAILED.csv.

        Args:
            name: Query name
            kind: Query kind
            error: Description of what went wrong
        """
        self.failed_queries.append(FailedQuery(name=name, kind=kind, error=error))
        logger.warning(f"Recorded failure for {name}: {error}")

    def write_failed_csv(self) -> Path | None:
        """
        Write all recorded failures to FAILED.csv.

        CSV columns: name, kind, error

        Returns:
            Path to FAILED.csv if any failures were recorded, else None
        """
        if not self.failed_queries:
            logger.info("No failures to write")
            return None

        self.output_dir.mkdir(parents=True, exist_ok=True)
        failed_csv = self.output_dir / "FAILED.csv"

        logger.info(f"Writing {len(self.failed_queries)} failures to {failed_csv}")

        with open(failed_csv, "w", newline="") as f:
            writer = csv.writer(f)
            writer.writerow(["name", "kind", "error"])
            for failure in self.failed_queries:
                writer.writerow([failure.name, failure.kind, failure.error])

        return failed_csv

    def finalize(self) -> Path | None:
        """
        Finalize output by writing FAILED.csv.

        Returns:
            Path to FAILED.csv if any failures occurred, else None
        """
        return self.write_failed_csv()
