"""
Flow accumulation by dependency-ordered frontier propagation.

Implements FD8 (multiple flow direction, Freeman 1991 / Quinn et al. 1995)
accumulation from an elevation surface and D8 accumulation from a pointer
surface. Both share the same two phases:

1. Parallel in-degree pass (see indegree.py) producing an owned count grid
   and the initial frontier.
2. Single-threaded propagation over an explicit stack: a cell is popped only
   once every upstream neighbour has retired its in-degree, so its
   accumulated value is final when it is distributed downslope.

The FD8 split sends each lower neighbour a share proportional to
(elevation drop)^p. Cells whose accumulated value reaches the convergence
threshold send everything to the steepest neighbour instead (drop / distance).

A final row-parallel pass converts cell counts to the requested output unit:

    cells : number of upslope cells
    ca    : catchment area (cells * cell area)
    sca   : specific contributing area (catchment area / mean cell size)
"""

import logging
import math
import time
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
from numba import jit, prange

from .addressing import (
    D_COL,
    D_ROW,
    NODATA_DIRECTION,
    active_directions,
    decode_pointer_grid,
    direction_lengths,
    pointer_table,
)
from .config import DEFAULT_EXPONENT, DEFAULT_OUT_TYPE, DEFAULT_THRESHOLD
from .errors import InvalidInputError, emit_structural_warning
from .indegree import estimate_in_degree
from .raster import Raster
from .utils.helpers import format_elapsed_time

logger = logging.getLogger(__name__)

RESOLVED = -1

OUT_TYPES = ("cells", "ca", "sca")


@dataclass
class AccumulationResult:
    """Output of a flow accumulation run."""

    output: Raster
    num_resolved: int
    num_valid: int
    warnings: List[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        """True if every valid cell was popped from the frontier."""
        return self.num_resolved == self.num_valid


def parse_out_type(out_type: str) -> str:
    """
    Normalise an output-unit selector.

    Accepts "cells", "ca"/"catchment area", "sca"/"specific contributing area".
    """
    key = str(out_type).strip().lower()
    if "specific" in key or key == "sca":
        return "sca"
    if "cell" in key:
        return "cells"
    if "catchment" in key or key == "ca":
        return "ca"
    raise InvalidInputError(
        f"Output type must be 'cells', 'catchment area' or 'specific contributing area', "
        f"got {out_type!r}"
    )


def output_scale_factor(out_type: str, cell_size_x: float, cell_size_y: float) -> float:
    """Return cell_area / averaging_length for an output unit."""
    out_type = parse_out_type(out_type)
    if out_type == "cells":
        return 1.0
    cell_area = cell_size_x * cell_size_y
    if out_type == "ca":
        return cell_area
    return cell_area / ((cell_size_x + cell_size_y) / 2.0)


@jit(nopython=True, cache=True)
def _propagate_fd8(dem, nodata, counts, accum, frontier, dirs, lengths, exponent, threshold):
    """
    Single-threaded FD8 propagation (numba accelerated).

    Modifies counts and accum in-place. Resolved cells get counts == RESOLVED.

    Returns
    -------
    int
        Number of cells popped from the frontier
    """
    rows, cols = dem.shape
    n_dirs = dirs.shape[0]

    stack = np.empty(rows * cols, dtype=np.int64)
    top = 0
    for i in range(frontier.shape[0]):
        stack[top] = frontier[i]
        top += 1

    weights = np.zeros(8, dtype=np.float64)
    downslope = np.zeros(8, dtype=np.bool_)
    num_solved = 0

    while top > 0:
        top -= 1
        flat_idx = stack[top]
        row = flat_idx // cols
        col = flat_idx % cols
        z = dem[row, col]
        fa = accum[row, col]
        counts[row, col] = RESOLVED
        num_solved += 1

        for k in range(8):
            weights[k] = 0.0
            downslope[k] = False
        total_weights = 0.0

        if fa < threshold:
            for k in range(n_dirs):
                d = dirs[k]
                row_n = row + D_ROW[d]
                col_n = col + D_COL[d]
                if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
                    continue
                z_n = dem[row_n, col_n]
                if z_n != nodata and z_n < z:
                    weights[d] = (z - z_n) ** exponent
                    total_weights += weights[d]
                    downslope[d] = True
        else:
            # steepest descent: all of fa goes to one neighbour, but every
            # lower neighbour still has its in-degree retired
            best = -1
            max_slope = -np.inf
            for k in range(n_dirs):
                d = dirs[k]
                row_n = row + D_ROW[d]
                col_n = col + D_COL[d]
                if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
                    continue
                z_n = dem[row_n, col_n]
                if z_n != nodata and z_n < z:
                    downslope[d] = True
                    slope = (z - z_n) / lengths[d]
                    if slope > max_slope:
                        max_slope = slope
                        best = d
            if best >= 0:
                weights[best] = 1.0
                total_weights = 1.0

        if total_weights > 0.0:
            for d in range(8):
                if downslope[d]:
                    row_n = row + D_ROW[d]
                    col_n = col + D_COL[d]
                    accum[row_n, col_n] += fa * (weights[d] / total_weights)
                    counts[row_n, col_n] -= 1
                    if counts[row_n, col_n] == 0:
                        stack[top] = row_n * cols + col_n
                        top += 1

    return num_solved


@jit(nopython=True, cache=True)
def _propagate_d8(directions, counts, accum, frontier):
    """
    Single-threaded D8 propagation (numba accelerated).

    Each popped cell passes its whole value to the cell its pointer resolves to.

    Returns
    -------
    int
        Number of cells popped from the frontier
    """
    rows, cols = directions.shape

    stack = np.empty(rows * cols, dtype=np.int64)
    top = 0
    for i in range(frontier.shape[0]):
        stack[top] = frontier[i]
        top += 1

    num_solved = 0
    while top > 0:
        top -= 1
        flat_idx = stack[top]
        row = flat_idx // cols
        col = flat_idx % cols
        counts[row, col] = RESOLVED
        num_solved += 1

        d = directions[row, col]
        if d < 0:
            continue
        row_n = row + D_ROW[d]
        col_n = col + D_COL[d]
        if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
            continue
        if directions[row_n, col_n] == NODATA_DIRECTION:
            continue
        accum[row_n, col_n] += accum[row, col]
        counts[row_n, col_n] -= 1
        if counts[row_n, col_n] == 0:
            stack[top] = row_n * cols + col_n
            top += 1

    return num_solved


@jit(nopython=True, parallel=True, cache=True)
def _scale_output(accum, valid, factor, log_transform, nodata):
    """Convert accumulated cell counts to output units in-place (parallel over rows)."""
    rows, cols = accum.shape
    for row in prange(rows):
        for col in range(cols):
            if not valid[row, col]:
                accum[row, col] = nodata
            elif log_transform:
                accum[row, col] = np.log(accum[row, col] * factor)
            else:
                accum[row, col] = accum[row, col] * factor


def _finish(
    tool_name: str,
    source: Raster,
    accum: np.ndarray,
    valid: np.ndarray,
    out_type: str,
    log_transform: bool,
    clip: bool,
) -> Raster:
    factor = output_scale_factor(out_type, source.cell_size_x, source.cell_size_y)
    _scale_output(accum, valid, factor, log_transform, source.nodata)

    output = source.new_like(data=accum)
    if clip:
        output.clip_display_max(1.0)
    output.add_metadata_entry(f"Created by gridflow's {tool_name} tool")
    output.add_metadata_entry(f"Output type: {parse_out_type(out_type)}")
    output.add_metadata_entry(f"Log-transformed: {log_transform}")
    return output


def fd8_flow_accumulation(
    dem: Raster,
    exponent: float = DEFAULT_EXPONENT,
    threshold: float = DEFAULT_THRESHOLD,
    out_type: str = DEFAULT_OUT_TYPE,
    log_transform: bool = False,
    clip: bool = False,
    connectivity=8,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> AccumulationResult:
    """
    Compute FD8 flow accumulation from an elevation surface.

    Parameters
    ----------
    dem : Raster
        Elevation surface (read only). Should be free of depressions; interior
        pits are reported, not fixed.
    exponent : float, default 1.1
        Exponent p applied to elevation drops when splitting flow.
    threshold : float, default inf
        Convergence threshold in grid cells. Cells whose accumulated value is
        at or above it route everything to their steepest neighbour.
    out_type : str, default "sca"
        "cells", "ca" (catchment area) or "sca" (specific contributing area).
    log_transform : bool
        Natural-log transform the output.
    clip : bool
        Clip the display maximum by 1% (display bookkeeping only).
    connectivity : int, default 8
        4 or 8; which neighbours take part in fan-out.
    num_workers : int, optional
        Worker count for the parallel phases.
    verbose : bool
        Show progress bars.

    Returns
    -------
    AccumulationResult
        Output surface plus any structural warnings.

    Raises
    ------
    InvalidInputError
        If a parameter is malformed (before any computation).
    """
    out_type = parse_out_type(out_type)
    if not math.isfinite(exponent):
        raise InvalidInputError(f"Exponent must be finite, got {exponent}")
    if not threshold > 0:
        raise InvalidInputError(f"Convergence threshold must be positive, got {threshold}")

    logger.info(
        f"FD8 flow accumulation: {dem.rows} x {dem.columns}, exponent={exponent}, "
        f"threshold={threshold}, out_type={out_type}"
    )
    start = time.perf_counter()
    warnings_found: List[str] = []

    in_degree = estimate_in_degree(
        dem, mode="elevation", connectivity=connectivity, num_workers=num_workers, verbose=verbose
    )
    valid = dem.valid_mask()
    accum = np.ones(dem.shape, dtype=np.float64)

    num_solved = _propagate_fd8(
        dem.data,
        dem.nodata,
        in_degree.counts,
        accum,
        in_degree.frontier,
        active_directions(connectivity),
        direction_lengths(dem.cell_size_x, dem.cell_size_y),
        float(exponent),
        float(threshold),
    )
    logger.info(f"Flow accumulation: resolved {num_solved:,} of {in_degree.num_valid:,} cells")

    if num_solved < in_degree.num_valid:
        emit_structural_warning(
            f"{in_degree.num_valid - num_solved} cells were never resolved by the frontier; "
            "the flow network contains a cycle or malformed input.",
            warnings_found,
            logger,
        )

    output = _finish("fd8_flow_accumulation", dem, accum, valid, out_type, log_transform, clip)
    output.add_metadata_entry(f"Exponent: {exponent}")
    output.add_metadata_entry(f"Convergence threshold: {threshold}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")

    if in_degree.interior_pit_found:
        emit_structural_warning(
            "Interior pit cells were found within the input DEM. It is likely that the DEM "
            "needs to be processed to remove topographic depressions and flats prior to "
            "running this tool.",
            warnings_found,
            logger,
        )

    return AccumulationResult(
        output=output,
        num_resolved=int(num_solved),
        num_valid=in_degree.num_valid,
        warnings=warnings_found,
    )


def d8_flow_accumulation(
    pointer: Raster,
    scheme="native",
    out_type: str = "cells",
    log_transform: bool = False,
    clip: bool = False,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> AccumulationResult:
    """
    Compute D8 flow accumulation from a single-direction pointer surface.

    Parameters
    ----------
    pointer : Raster
        D8 pointer surface coded per `scheme`. Cells with value <= 0 or an
        unmapped code are outlets.
    scheme : str or PointerScheme, default "native"
        Pointer coding ("native" or "esri").
    out_type, log_transform, clip, num_workers, verbose
        As in fd8_flow_accumulation.

    Returns
    -------
    AccumulationResult
        Cells caught in pointer cycles are never resolved and are reported
        with a StructuralWarning; they keep their partial values.
    """
    out_type = parse_out_type(out_type)
    table = pointer_table(scheme)

    logger.info(f"D8 flow accumulation: {pointer.rows} x {pointer.columns}, scheme={scheme}")
    start = time.perf_counter()
    warnings_found: List[str] = []

    in_degree = estimate_in_degree(
        pointer, mode="pointer", scheme=scheme, num_workers=num_workers, verbose=verbose
    )
    directions = decode_pointer_grid(pointer.data, pointer.nodata, table)
    valid = directions != NODATA_DIRECTION
    accum = np.ones(pointer.shape, dtype=np.float64)

    num_solved = _propagate_d8(directions, in_degree.counts, accum, in_degree.frontier)
    logger.info(f"Flow accumulation: resolved {num_solved:,} of {in_degree.num_valid:,} cells")

    if num_solved < in_degree.num_valid:
        emit_structural_warning(
            f"{in_degree.num_valid - num_solved} cells were never resolved by the frontier; "
            "the pointer surface contains a flow cycle.",
            warnings_found,
            logger,
        )

    output = _finish("d8_flow_accumulation", pointer, accum, valid, out_type, log_transform, clip)
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")

    return AccumulationResult(
        output=output,
        num_resolved=int(num_solved),
        num_valid=in_degree.num_valid,
        warnings=warnings_found,
    )
