"""
Main Typer CLI application for nhdquery.

This module provides the command-line interface with four subcommands:
- run: Run every query of a configuration file and write GeoPackages
- query: Ad hoc overlay selection by point buffer or polygon
- reaches: Ad hoc terminal or leaf reach classification
- utm-zone: Show the UTM zone and projected CRS for a longitude
"""

import logging
import sys
from pathlib import Path
from typing import Annotated

import geopandas as gpd
import click
import typer
from pydantic import ValidationError
from rich.console import Console

from nhdquery.cli.output import OutputFormatter, QueryRecord, RunResult
from nhdquery.config import DEFAULT_DATASETS, QueryConfig, SettingsConfig, load_config, load_settings
from nhdquery.core import (
    DataSources,
    LocalFeatureLoader,
    LocalFlowTableLoader,
    OutputWriter,
    QueryError,
    ReachKind,
    find_reaches,
    load_units,
    long_to_utm_zone,
    nhd_plus_query,
    utm_crs,
)
from nhdquery.logging_config import setup_logging

app = typer.Typer(
    name="nhdquery",
    help="Spatial overlay and flow-network reach queries over NHDPlus hydrography",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
logger = logging.getLogger(__name__)

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Configuration file providing [settings]", exists=True, dir_okay=False),
]
DataDirOption = Annotated[Path | None, typer.Option("--data-dir", help="Directory with extracted hydrography data")]
UnitsFileOption = Annotated[str | None, typer.Option("--units-file", help="Watershed units layer")]
UnitFieldOption = Annotated[str | None, typer.Option("--unit-field", help="Unit identifier column")]
ReferenceCrsOption = Annotated[
    str | None, typer.Option("--reference-crs", help="CRS of --lon/--lat and bare polygons, e.g. EPSG:4269")
]


def _resolve_settings(
    config: Path | None,
    data_dir: Path | None,
    units_file: str | None,
    unit_field: str | None,
    reference_crs: str | None,
) -> SettingsConfig:
    """Build settings from an optional config file plus CLI overrides."""
    base = load_settings(config).model_dump() if config is not None else {}

    overrides = {
        "data_dir": str(data_dir) if data_dir is not None else None,
        "units_file": units_file,
        "unit_field": unit_field,
        "reference_crs": reference_crs,
    }
    base.update({key: value for key, value in overrides.items() if value is not None})

    return SettingsConfig.model_validate(base)


def _build_sources(settings: SettingsConfig) -> DataSources:
    """Create local loaders and load the units layer for a settings block."""
    data_dir = settings.resolve_data_dir()
    return DataSources(
        feature_loader=LocalFeatureLoader(data_dir),
        flow_loader=LocalFlowTableLoader(data_dir),
        units=load_units(settings.resolve_units_file()),
        unit_field=settings.unit_field,
        reference_crs=settings.reference_crs,
    )


def run_query(
    query: QueryConfig,
    settings: SettingsConfig,
    sources: DataSources,
) -> tuple[dict[str, gpd.GeoDataFrame], gpd.GeoSeries | None]:
    """
    Execute one configured query.

    Returns:
        Tuple of (layers keyed by name, reprojected query point or None)
    """
    if query.kind == "overlay":
        poly = gpd.read_file(query.polygon) if query.polygon else None
        result = nhd_plus_query(
            query.datasets,
            sources,
            lon=query.lon,
            lat=query.lat,
            poly=poly,
            buffer_dist=settings.buffer_dist if query.buffer_dist is None else query.buffer_dist,
        )
        return result.layers, result.point

    network = gpd.read_file(query.network) if query.network else None
    reaches = find_reaches(
        query.kind,
        sources,
        network=network,
        lon=query.lon,
        lat=query.lat,
        lake_buffer_dist=settings.lake_buffer_dist if query.buffer_dist is None else query.buffer_dist,
    )
    return {query.kind: reaches}, None


@app.command("run")
def run_command(
    config_file: Annotated[
        Path,
        typer.Argument(
            help="Path to configuration file (nhdquery.toml)",
            exists=True,
            file_okay=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Override output directory from config"),
    ] = None,
    max_fails: Annotated[
        int | None,
        typer.Option("--max-fails", help="Stop after N failures (overrides config)", min=1),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Validate configuration without processing"),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite existing output files"),
    ] = False,
    output_format: Annotated[
        str,
        typer.Option("--output-format", help="Output format: text or json"),
    ] = "text",
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress progress output"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show detailed progress"),
    ] = False,
) -> None:
    """
    Run every query defined in CONFIG_FILE.

    \b
    CONFIG FILE FORMAT (nhdquery.toml):
        [settings]
        data_dir = "data"
        units_file = "units/vpu.gpkg"
        reference_crs = "EPSG:4269"

        [[queries]]
        name = "gull_lake"
        kind = "overlay"           # overlay | terminal | leaf
        lon = -85.41
        lat = 42.40
        datasets = ["NHDWaterbody", "NHDFlowline"]

    \b
    EXAMPLES:
        nhdquery run nhdquery.toml
        nhdquery run nhdquery.toml --dry-run
        nhdquery run nhdquery.toml -o ./output --force
    """
    setup_logging(verbose=verbose, quiet=quiet)

    if output_format not in ["text", "json"]:
        console.print(f"[red]Error:[/red] Invalid output format '{output_format}'. Must be 'text' or 'json'.")
        raise typer.Exit(2)

    formatter = OutputFormatter(output_format=output_format, quiet=quiet, verbose=verbose)

    try:
        formatter.print_progress("Loading configuration...", style="cyan")
        config = load_config(config_file)

        if output is not None:
            config.settings.output_dir = str(output)
            logger.info(f"Output directory overridden to: {output}")

        max_fails_value = max_fails or config.settings.max_fails

        formatter.print_progress(f"✓ Config valid: {len(config.queries)} query(ies)", style="green")

        output_dir_path = Path(config.settings.output_dir).resolve()
        if output_dir_path.exists() and not output_dir_path.is_dir():
            formatter.print_error(f"Output path exists but is not a directory: {output_dir_path}")
            raise typer.Exit(2)

        writer = OutputWriter(output_dir_path)

        if not force:
            existing = [q.name for q in config.queries if writer.check_output_exists(q.name)]
            if existing:
                formatter.print_error(
                    f"Output already exists for queries: {', '.join(existing)}",
                    hint="Use --force to overwrite existing outputs",
                )
                raise typer.Exit(2)

        if dry_run:
            formatter.print_progress("Ready to run.", style="bold green")
            raise typer.Exit(0)

        sources = _build_sources(config.settings)

        records: list[QueryRecord] = []
        fail_count = 0

        for idx, query in enumerate(config.queries, 1):
            formatter.print_progress(f"[{idx}/{len(config.queries)}] {query.name} ({query.kind})", style="cyan")

            try:
                layers, point = run_query(query, config.settings, sources)
                counts = {name: len(layer) for name, layer in layers.items()}
                output_path = None
                if point is not None or any(counts.values()):
                    output_path = writer.write_query_output(query.name, layers, point=point)
                else:
                    logger.warning(f"Query {query.name} selected nothing, no output written")
                records.append(
                    QueryRecord(
                        name=query.name,
                        kind=query.kind,
                        counts=counts,
                        output_path=str(output_path) if output_path else None,
                    )
                )
                formatter.print_verbose(f"  ✓ {query.name}: {counts}", style="green")

            except (QueryError, FileNotFoundError, ValueError) as e:
                writer.record_failure(query.name, query.kind, str(e))
                records.append(QueryRecord(name=query.name, kind=query.kind, error=str(e)))
                fail_count += 1
                formatter.print_verbose(f"  ✗ {query.name}: {e}", style="red")

            except Exception as e:
                writer.record_failure(query.name, query.kind, f"Unexpected error: {e}")
                records.append(QueryRecord(name=query.name, kind=query.kind, error=f"Unexpected error: {e}"))
                fail_count += 1
                logger.exception(f"Unexpected error running query {query.name}")

            if max_fails_value is not None and fail_count >= max_fails_value:
                writer.finalize()
                formatter.print_error(f"Reached maximum failures ({max_fails_value})")
                raise typer.Exit(2)

        failed_csv_path = writer.finalize()

        result = RunResult.from_records(records, failed_log=str(failed_csv_path) if failed_csv_path else None)
        formatter.print_result(result)
        raise typer.Exit(result.exit_code)

    except typer.Exit:
        raise
    except KeyboardInterrupt:
        logger.warning("Process interrupted by user")
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130) from None
    except ValidationError as e:
        formatter.print_error("Invalid configuration", details=str(e))
        raise typer.Exit(2) from None
    except Exception as e:
        logger.exception("Unexpected error during run command")
        formatter.print_error(str(e))
        raise typer.Exit(2) from None


@app.command("query")
def query_command(
    dataset: Annotated[
        list[str] | None,
        typer.Option("--dataset", "-d", help="Dataset to select from (repeatable)"),
    ] = None,
    lon: Annotated[float | None, typer.Option("--lon", help="Longitude of the query point")] = None,
    lat: Annotated[float | None, typer.Option("--lat", help="Latitude of the query point")] = None,
    polygon: Annotated[
        Path | None,
        typer.Option("--polygon", help="Polygon file to select by", exists=True, dir_okay=False),
    ] = None,
    buffer_dist: Annotated[
        float | None,
        typer.Option("--buffer-dist", help="Point buffer in reference CRS units", click_type=click.FloatRange(min=0.0, min_open=True)),
    ] = None,
    name: Annotated[str, typer.Option("--name", help="Output file stem")] = "query",
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write a GeoPackage to this directory"),
    ] = None,
    config: ConfigOption = None,
    data_dir: DataDirOption = None,
    units_file: UnitsFileOption = None,
    unit_field: UnitFieldOption = None,
    reference_crs: ReferenceCrsOption = None,
    output_format: Annotated[str, typer.Option("--output-format", help="Output format: text or json")] = "text",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """
    Select features by a point buffer or a polygon.

    You must specify either --lon/--lat OR --polygon (not both).

    \b
    EXAMPLES:
        nhdquery query -c nhdquery.toml --lon -85.41 --lat 42.40 -d NHDWaterbody -d NHDFlowline
        nhdquery query -c nhdquery.toml --polygon lake.geojson -d NHDFlowline -o ./output
    """
    setup_logging(verbose=verbose, quiet=output_format == "json")
    formatter = OutputFormatter(output_format=output_format if output_format in ("text", "json") else "text")

    has_point = lon is not None or lat is not None
    if has_point and polygon is not None:
        formatter.print_error("Cannot specify both --lon/--lat and --polygon. Choose one.")
        raise typer.Exit(2)
    if polygon is None and (lon is None or lat is None):
        formatter.print_error("Must specify either --lon and --lat, or --polygon")
        raise typer.Exit(2)

    try:
        settings = _resolve_settings(config, data_dir, units_file, unit_field, reference_crs)
        sources = _build_sources(settings)

        result = nhd_plus_query(
            dataset or DEFAULT_DATASETS,
            sources,
            lon=lon,
            lat=lat,
            poly=gpd.read_file(polygon) if polygon is not None else None,
            buffer_dist=settings.buffer_dist if buffer_dist is None else buffer_dist,
        )

        formatter.print_layer_counts(f"Query '{name}'", result.counts, crs=result.crs)

        if output is not None and (result.point is not None or any(result.counts.values())):
            path = OutputWriter(output).write_query_output(name, result.layers, point=result.point)
            formatter.print_progress(f"→ {path}")

    except ValidationError as e:
        formatter.print_error(
            "Invalid settings", hint="Pass --config or --units-file and --reference-crs", details=str(e)
        )
        raise typer.Exit(2) from None
    except (QueryError, FileNotFoundError, ValueError) as e:
        formatter.print_error(str(e))
        raise typer.Exit(2) from None


@app.command("reaches")
def reaches_command(
    kind: Annotated[ReachKind, typer.Argument(help="Reach class: terminal or leaf")],
    network: Annotated[
        Path | None,
        typer.Option("--network", help="Reach layer file to classify", exists=True, dir_okay=False),
    ] = None,
    lon: Annotated[float | None, typer.Option("--lon", help="Longitude of a point on the lake")] = None,
    lat: Annotated[float | None, typer.Option("--lat", help="Latitude of a point on the lake")] = None,
    lake_buffer_dist: Annotated[
        float | None,
        typer.Option("--lake-buffer-dist", help="Lake search radius in reference CRS units", click_type=click.FloatRange(min=0.0, min_open=True)),
    ] = None,
    name: Annotated[str, typer.Option("--name", help="Output file stem")] = "reaches",
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write a GeoPackage to this directory"),
    ] = None,
    config: ConfigOption = None,
    data_dir: DataDirOption = None,
    units_file: UnitsFileOption = None,
    unit_field: UnitFieldOption = None,
    reference_crs: ReferenceCrsOption = None,
    output_format: Annotated[str, typer.Option("--output-format", help="Output format: text or json")] = "text",
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """
    Find the terminal (outlet) or leaf (headwater) reaches of a network.

    You must specify either --network OR --lon/--lat (not both). With a
    point, the network is the set of flowlines touching the largest
    waterbody near it.

    \b
    EXAMPLES:
        nhdquery reaches terminal -c nhdquery.toml --lon -73.24189 --lat 41.42217
        nhdquery reaches leaf -c nhdquery.toml --network flowlines.gpkg
    """
    setup_logging(verbose=verbose, quiet=output_format == "json")
    formatter = OutputFormatter(output_format=output_format if output_format in ("text", "json") else "text")

    has_point = lon is not None or lat is not None
    if has_point and network is not None:
        formatter.print_error("Cannot specify both --lon/--lat and --network. Choose one.")
        raise typer.Exit(2)
    if network is None and (lon is None or lat is None):
        formatter.print_error("Must specify either --lon and --lat, or --network")
        raise typer.Exit(2)

    try:
        settings = _resolve_settings(config, data_dir, units_file, unit_field, reference_crs)
        sources = _build_sources(settings)

        result = find_reaches(
            kind,
            sources,
            network=gpd.read_file(network) if network is not None else None,
            lon=lon,
            lat=lat,
            lake_buffer_dist=settings.lake_buffer_dist if lake_buffer_dist is None else lake_buffer_dist,
        )

        comids = sorted(int(c) for c in result["comid"]) if "comid" in result.columns else []
        formatter.print_comids(kind.value, comids)

        if output is not None and not result.empty:
            path = OutputWriter(output).write_query_output(name, {kind.value: result})
            formatter.print_progress(f"→ {path}")

    except ValidationError as e:
        formatter.print_error(
            "Invalid settings", hint="Pass --config or --units-file and --reference-crs", details=str(e)
        )
        raise typer.Exit(2) from None
    except (QueryError, FileNotFoundError, ValueError) as e:
        formatter.print_error(str(e))
        raise typer.Exit(2) from None


@app.command("utm-zone")
def utm_zone_command(
    lon: Annotated[float, typer.Argument(help="Longitude in decimal degrees (use -- before negative values)")],
) -> None:
    """
    Show the UTM zone and projected CRS used for a longitude.

    \b
    EXAMPLE:
        nhdquery utm-zone -- -73.24189
    """
    zone = long_to_utm_zone(lon)
    console.print(f"[cyan]Zone:[/cyan] {zone}")
    console.print(f"[cyan]CRS:[/cyan] {utm_crs(lon)}")


if __name__ == "__main__":
    app(sys.argv[1:])
