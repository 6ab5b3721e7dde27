"""
Command-line entry point for the gridflow tools.

Examples:
  # FD8 specific contributing area, log-transformed
  gridflow fd8 dem.tif sca.tif --exponent 1.1 --log

  # D8 pointer, then basins from it
  gridflow d8-pointer dem.tif pointer.tif
  gridflow basins pointer.tif basins.tif

  # Shaded relief lit from the north-west
  gridflow hillshade dem.tif shade.tif --azimuth 315 --altitude 30
"""

import argparse
import sys
from pathlib import Path

from rasterio.errors import RasterioIOError

from .accumulation import d8_flow_accumulation, fd8_flow_accumulation
from .basins import basins
from .clump import clump
from .config import (
    DEFAULT_ALTITUDE,
    DEFAULT_AZIMUTH,
    DEFAULT_EXPONENT,
    DEFAULT_LOG_LEVEL,
    DEFAULT_OUT_TYPE,
    DEFAULT_PERCENTILE_FILTER,
    DEFAULT_PLAN_THRESHOLD,
    DEFAULT_PROFILE_THRESHOLD,
    DEFAULT_RANGE_FILTER,
    DEFAULT_SCA_EXPONENT,
    DEFAULT_SIG_DIGITS,
    DEFAULT_SLOPE_EXPONENT,
    DEFAULT_SLOPE_THRESHOLD,
    DEFAULT_THRESHOLD,
)
from .errors import InvalidInputError
from .imaging import split_colour_composite, write_function_memory_insertion
from .pointer import d8_pointer
from .raster import read_raster, write_raster
from .sediment import sediment_transport_index
from .streams import extract_streams
from .terrain import elev_percentile, hillshade, pennock_landform_class, percent_elev_range
from .utils.helpers import get_logger


def _add_common(parser: argparse.ArgumentParser, workers: bool = True) -> None:
    parser.add_argument("-v", "--verbose", action="store_true", help="Show progress and debug logging")
    if workers:
        parser.add_argument(
            "--workers",
            type=int,
            default=None,
            help="Worker threads for the row phases (default: GRIDFLOW_NUM_WORKERS or CPU count)",
        )


def _add_accum_output(parser: argparse.ArgumentParser, default_out_type: str) -> None:
    parser.add_argument(
        "--out-type",
        default=default_out_type,
        help=f"cells, ca (catchment area) or sca (specific contributing area) (default: {default_out_type})",
    )
    parser.add_argument("--log", action="store_true", help="Natural-log transform the output")
    parser.add_argument("--clip", action="store_true", help="Clip the display maximum by 1%%")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gridflow",
        description="Flow-network tools for gridded elevation surfaces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("fd8", help="FD8 flow accumulation from a DEM")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--exponent", type=float, default=DEFAULT_EXPONENT, help="Flow-split exponent")
    p.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help="Convergence threshold in cells (default: none)",
    )
    p.add_argument("--connectivity", type=int, choices=(4, 8), default=8)
    _add_accum_output(p, DEFAULT_OUT_TYPE)
    _add_common(p)

    p = sub.add_parser("d8-accum", help="D8 flow accumulation from a pointer raster")
    p.add_argument("pointer", type=Path, help="Input D8 pointer")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--esri", action="store_true", help="Pointer uses the ESRI coding")
    _add_accum_output(p, "cells")
    _add_common(p)

    p = sub.add_parser("d8-pointer", help="D8 flow pointer from a DEM")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--esri", action="store_true", help="Write the ESRI coding")
    _add_common(p)

    p = sub.add_parser("basins", help="Drainage basins from a D8 pointer raster")
    p.add_argument("pointer", type=Path, help="Input D8 pointer")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--esri", action="store_true", help="Pointer uses the ESRI coding")
    _add_common(p, workers=False)

    p = sub.add_parser("clump", help="Label connected regions of equal value")
    p.add_argument("input", type=Path, help="Input categorical raster")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--no-diagonal", action="store_true", help="Use 4-neighbour connectivity")
    p.add_argument("--zero-background", action="store_true", help="Treat 0 as background")
    _add_common(p, workers=False)

    p = sub.add_parser("streams", help="Extract streams from a flow accumulation raster")
    p.add_argument("flow_accum", type=Path, help="Input flow accumulation")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--threshold", type=float, required=True, help="Channelization threshold")
    p.add_argument("--zero-background", action="store_true", help="Write 0 for non-stream cells")
    _add_common(p)

    p = sub.add_parser("sti", help="Sediment transport index from SCA and slope")
    p.add_argument("sca", type=Path, help="Input specific contributing area")
    p.add_argument("slope", type=Path, help="Input slope in degrees")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--sca-exponent", type=float, default=DEFAULT_SCA_EXPONENT)
    p.add_argument("--slope-exponent", type=float, default=DEFAULT_SLOPE_EXPONENT)
    _add_common(p)

    p = sub.add_parser("hillshade", help="Shaded relief from a DEM")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--azimuth", type=float, default=DEFAULT_AZIMUTH, help="Light direction in degrees")
    p.add_argument("--altitude", type=float, default=DEFAULT_ALTITUDE, help="Light elevation in degrees")
    p.add_argument("--zfactor", type=float, default=1.0, help="Elevation unit conversion")
    _add_common(p)

    p = sub.add_parser("elev-percentile", help="Elevation percentile within a moving window")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--filterx", type=int, default=DEFAULT_PERCENTILE_FILTER, help="Window width in cells")
    p.add_argument("--filtery", type=int, default=None, help="Window height in cells (default: filterx)")
    p.add_argument("--sig-digits", type=int, default=DEFAULT_SIG_DIGITS)
    _add_common(p)

    p = sub.add_parser("percent-elev-range", help="Position in the local elevation range")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--filterx", type=int, default=DEFAULT_RANGE_FILTER, help="Window width in cells")
    p.add_argument("--filtery", type=int, default=None, help="Window height in cells (default: filterx)")
    _add_common(p)

    p = sub.add_parser("pennock", help="Pennock et al. (1987) landform classes")
    p.add_argument("dem", type=Path, help="Input DEM")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--slope", type=float, default=DEFAULT_SLOPE_THRESHOLD, help="Slope threshold in degrees")
    p.add_argument("--prof", type=float, default=DEFAULT_PROFILE_THRESHOLD, help="Profile curvature threshold")
    p.add_argument("--plan", type=float, default=DEFAULT_PLAN_THRESHOLD, help="Plan curvature threshold")
    p.add_argument("--zfactor", type=float, default=1.0, help="Elevation unit conversion")
    _add_common(p)

    p = sub.add_parser("split-colour", help="Split a packed colour composite into bands")
    p.add_argument("input", type=Path, help="Input colour composite")
    p.add_argument(
        "output",
        type=Path,
        help="Output base name; _red, _green and _blue are appended to the stem",
    )
    _add_common(p)

    p = sub.add_parser("wfmi", help="Write function memory insertion change composite")
    p.add_argument("date1", type=Path, help="First date (red)")
    p.add_argument("date2", type=Path, help="Second date (green)")
    p.add_argument("output", type=Path, help="Output raster")
    p.add_argument("--date3", type=Path, default=None, help="Third date (blue; default: date2)")
    _add_common(p)

    return parser


def _band_path(path: Path, band: str) -> Path:
    return path.with_name(f"{path.stem}_{band}{path.suffix}")


def run(args: argparse.Namespace) -> list:
    """Run one subcommand and return the structural warnings it produced."""
    scheme = "esri" if getattr(args, "esri", False) else "native"

    if args.command == "fd8":
        result = fd8_flow_accumulation(
            read_raster(args.dem),
            exponent=args.exponent,
            threshold=args.threshold,
            out_type=args.out_type,
            log_transform=args.log,
            clip=args.clip,
            connectivity=args.connectivity,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        output, warnings_found = result.output, result.warnings
    elif args.command == "d8-accum":
        result = d8_flow_accumulation(
            read_raster(args.pointer),
            scheme=scheme,
            out_type=args.out_type,
            log_transform=args.log,
            clip=args.clip,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        output, warnings_found = result.output, result.warnings
    elif args.command == "d8-pointer":
        output = d8_pointer(
            read_raster(args.dem), scheme=scheme, num_workers=args.workers, verbose=args.verbose
        )
        warnings_found = []
    elif args.command == "basins":
        result = basins(read_raster(args.pointer), scheme=scheme)
        output, warnings_found = result.output, result.warnings
    elif args.command == "clump":
        result = clump(
            read_raster(args.input),
            diagonal=not args.no_diagonal,
            zero_background=args.zero_background,
        )
        output, warnings_found = result.output, []
    elif args.command == "streams":
        output = extract_streams(
            read_raster(args.flow_accum),
            args.threshold,
            zero_background=args.zero_background,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []
    elif args.command == "sti":
        output, warnings_found = sediment_transport_index(
            read_raster(args.sca),
            read_raster(args.slope),
            sca_exponent=args.sca_exponent,
            slope_exponent=args.slope_exponent,
            num_workers=args.workers,
            verbose=args.verbose,
        )
    elif args.command == "hillshade":
        output = hillshade(
            read_raster(args.dem),
            azimuth=args.azimuth,
            altitude=args.altitude,
            z_factor=args.zfactor,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []
    elif args.command == "elev-percentile":
        output = elev_percentile(
            read_raster(args.dem),
            filter_size_x=args.filterx,
            filter_size_y=args.filtery,
            sig_digits=args.sig_digits,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []
    elif args.command == "percent-elev-range":
        output = percent_elev_range(
            read_raster(args.dem),
            filter_size_x=args.filterx,
            filter_size_y=args.filtery,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []
    elif args.command == "pennock":
        output = pennock_landform_class(
            read_raster(args.dem),
            slope_threshold=args.slope,
            prof_threshold=args.prof,
            plan_threshold=args.plan,
            z_factor=args.zfactor,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []
    elif args.command == "split-colour":
        bands = split_colour_composite(
            read_raster(args.input), num_workers=args.workers, verbose=args.verbose
        )
        for name, band in zip(("red", "green", "blue"), bands):
            write_raster(band, _band_path(args.output, name))
        return []
    else:
        date3 = read_raster(args.date3) if args.date3 is not None else None
        output = write_function_memory_insertion(
            read_raster(args.date1),
            read_raster(args.date2),
            date3,
            num_workers=args.workers,
            verbose=args.verbose,
        )
        warnings_found = []

    write_raster(output, args.output)
    return warnings_found


def main(argv=None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logger = get_logger("gridflow", DEFAULT_LOG_LEVEL)
    if args.verbose:
        logger.setLevel("DEBUG")
        for handler in logger.handlers:
            handler.setLevel("DEBUG")

    try:
        warnings_found = run(args)
    except (InvalidInputError, FileNotFoundError, RasterioIOError) as e:
        logger.error(str(e))
        print(f"gridflow {args.command}: error: {e}", file=sys.stderr)
        return 1

    for message in warnings_found:
        print(f"Warning: {message}", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
