"""
In-degree estimation for grid flow networks.

Counts, for every cell, how many neighbours drain into it. The count grid is
the hand-off structure between the parallel row phase and the single-threaded
frontier propagation: cells whose count is zero form the initial frontier.

Three modes are supported:
- "elevation": neighbours strictly higher than the cell (FD8 routing)
- "pointer": neighbours whose D8 pointer resolves to the cell
- "validity": 0 for every valid cell (labelling needs no counts)

No-data cells hold NODATA_COUNT in every mode.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numba import jit

from .addressing import (
    D_COL,
    D_ROW,
    NODATA_DIRECTION,
    active_directions,
    decode_pointer_grid,
    pointer_table,
)
from .errors import InvalidInputError
from .parallel import map_row_blocks
from .raster import Raster

logger = logging.getLogger(__name__)

NODATA_COUNT = -1
MODES = ("elevation", "pointer", "validity")


@dataclass
class InDegreeResult:
    """Output of the in-degree pass."""

    counts: np.ndarray
    """int8 grid of inflowing-neighbour counts, NODATA_COUNT for no-data cells."""

    frontier: np.ndarray
    """Flat indices (row * columns + col) of valid cells with a zero count."""

    interior_pit_found: bool
    """True if some cell has every neighbour valid and strictly higher."""

    num_nodata: int
    """Number of no-data cells."""

    @property
    def num_valid(self) -> int:
        return self.counts.size - self.num_nodata


@jit(nopython=True, nogil=True, cache=True)
def _elevation_inflow_block(dem, nodata, dirs, row_start, row_end):
    """Count strictly higher valid neighbours for rows [row_start, row_end)."""
    rows, cols = dem.shape
    n_dirs = dirs.shape[0]
    block = np.empty((row_end - row_start, cols), dtype=np.int8)
    block[:] = NODATA_COUNT
    pit_found = False

    for row in range(row_start, row_end):
        for col in range(cols):
            z = dem[row, col]
            if z == nodata:
                continue
            count = 0
            for k in range(n_dirs):
                d = dirs[k]
                row_n = row + D_ROW[d]
                col_n = col + D_COL[d]
                if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
                    continue
                z_n = dem[row_n, col_n]
                if z_n != nodata and z_n > z:
                    count += 1
            block[row - row_start, col] = count
            if count == n_dirs:
                pit_found = True

    return block, pit_found


@jit(nopython=True, nogil=True, cache=True)
def _pointer_inflow_block(directions, row_start, row_end):
    """Count neighbours whose pointer resolves to each cell in [row_start, row_end)."""
    rows, cols = directions.shape
    block = np.empty((row_end - row_start, cols), dtype=np.int8)
    block[:] = NODATA_COUNT

    for row in range(row_start, row_end):
        for col in range(cols):
            if directions[row, col] == NODATA_DIRECTION:
                continue
            count = 0
            for d in range(8):
                row_n = row + D_ROW[d]
                col_n = col + D_COL[d]
                if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
                    continue
                # the neighbour in direction d drains here if it points back
                if directions[row_n, col_n] == (d + 4) % 8:
                    count += 1
            block[row - row_start, col] = count

    return block, False


@jit(nopython=True, nogil=True, cache=True)
def _validity_block(data, nodata, row_start, row_end):
    cols = data.shape[1]
    block = np.empty((row_end - row_start, cols), dtype=np.int8)
    for row in range(row_start, row_end):
        for col in range(cols):
            if data[row, col] == nodata:
                block[row - row_start, col] = NODATA_COUNT
            else:
                block[row - row_start, col] = 0
    return block, False


def estimate_in_degree(
    surface: Raster,
    mode: str = "elevation",
    connectivity=8,
    scheme="native",
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> InDegreeResult:
    """
    Compute the in-degree grid and the initial frontier for a surface.

    Rows are processed in parallel; this thread collects the finished blocks
    in whatever order they complete and builds the count grid and frontier.

    Args:
        surface: Elevation surface ("elevation", "validity") or D8 pointer
            surface ("pointer"); read only
        mode: One of "elevation", "pointer", "validity"
        connectivity: 4 or 8, neighbours counted in elevation mode
        scheme: Pointer coding used in pointer mode
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        InDegreeResult

    Raises:
        InvalidInputError: If mode is unknown
    """
    if mode not in MODES:
        raise InvalidInputError(f"In-degree mode must be one of {MODES}, got {mode!r}")

    rows, cols = surface.shape
    if mode == "elevation":
        kernel = _elevation_inflow_block
        args = (surface.data, surface.nodata, active_directions(connectivity))
    elif mode == "pointer":
        kernel = _pointer_inflow_block
        args = (decode_pointer_grid(surface.data, surface.nodata, pointer_table(scheme)),)
    else:
        kernel = _validity_block
        args = (surface.data, surface.nodata)

    counts = np.empty((rows, cols), dtype=np.int8)
    frontier_parts = []
    interior_pit_found = False

    for row_start, (block, block_pit) in map_row_blocks(
        kernel, args, rows, num_workers, desc="Num. inflowing neighbours", verbose=verbose
    ):
        counts[row_start:row_start + block.shape[0]] = block
        frontier_parts.append(np.flatnonzero(block == 0) + row_start * cols)
        if block_pit:
            interior_pit_found = True

    if frontier_parts:
        frontier = np.concatenate(frontier_parts).astype(np.int64)
    else:
        frontier = np.empty(0, dtype=np.int64)

    num_nodata = int(np.count_nonzero(counts == NODATA_COUNT))
    logger.debug(
        f"In-degree ({mode}): {frontier.size} frontier cells, {num_nodata} no-data cells, "
        f"interior pit: {interior_pit_found}"
    )
    return InDegreeResult(
        counts=counts,
        frontier=frontier,
        interior_pit_found=interior_pit_found,
        num_nodata=num_nodata,
    )
