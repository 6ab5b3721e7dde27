"""
D8 flow pointer derivation (O'Callaghan & Mark, 1984).

Each cell points to the neighbour with the steepest downslope gradient
(elevation drop / distance). Cells with no lower neighbour are pits and get 0.
"""

import logging
import time
from typing import Optional

import numpy as np
from numba import jit

from .addressing import D_COL, D_ROW, active_directions, direction_lengths, pointer_codes
from .parallel import collect_row_blocks
from .raster import Raster
from .utils.helpers import format_elapsed_time

logger = logging.getLogger(__name__)


@jit(nopython=True, nogil=True, cache=True)
def _d8_pointer_block(dem, nodata, dirs, lengths, codes, row_start, row_end):
    rows, cols = dem.shape
    n_dirs = dirs.shape[0]
    block = np.empty((row_end - row_start, cols), dtype=np.float64)

    for row in range(row_start, row_end):
        for col in range(cols):
            z = dem[row, col]
            if z == nodata:
                block[row - row_start, col] = nodata
                continue
            best = -1
            max_slope = 0.0
            for k in range(n_dirs):
                d = dirs[k]
                row_n = row + D_ROW[d]
                col_n = col + D_COL[d]
                if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
                    continue
                z_n = dem[row_n, col_n]
                if z_n != nodata:
                    slope = (z - z_n) / lengths[d]
                    if slope > max_slope:
                        max_slope = slope
                        best = d
            if best >= 0:
                block[row - row_start, col] = codes[best]
            else:
                block[row - row_start, col] = 0.0

    return block


def d8_pointer(
    dem: Raster,
    scheme="native",
    connectivity=8,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Raster:
    """
    Compute a D8 flow pointer surface from elevations.

    Args:
        dem: Elevation surface (read only)
        scheme: Pointer coding of the output, "native" or "esri"
        connectivity: 4 or 8 candidate neighbours
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        Raster: Pointer codes; 0 for pits, no-data where the DEM has none
    """
    start = time.perf_counter()
    args = (
        dem.data,
        dem.nodata,
        active_directions(connectivity),
        direction_lengths(dem.cell_size_x, dem.cell_size_y),
        pointer_codes(scheme),
    )
    out = np.empty(dem.shape, dtype=np.float64)
    collect_row_blocks(_d8_pointer_block, args, out, num_workers, desc="D8 pointer", verbose=verbose)

    output = dem.new_like(data=out)
    output.add_metadata_entry("Created by gridflow's d8_pointer tool")
    output.add_metadata_entry(f"Pointer scheme: {scheme}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")
    logger.info(f"D8 pointer: {int(np.count_nonzero(out == 0.0))} pit cells")
    return output
