"""
Sediment transport index (Moore & Burch, 1986).

    STI = (n + 1) * (As / 22.13)^n * sin(B / 0.0896)^m

where As is specific contributing area, B the slope in radians, n the SCA
exponent and m the slope exponent. Takes two paired surfaces that must share
the same grid.
"""

import logging
import math
import time
from typing import List, Optional, Tuple

import numpy as np
from numba import jit

from .config import DEFAULT_SCA_EXPONENT, DEFAULT_SLOPE_EXPONENT
from .errors import emit_structural_warning
from .parallel import collect_row_blocks
from .raster import Raster
from .utils.helpers import format_elapsed_time

logger = logging.getLogger(__name__)

LOW_SCA_WARNING_LIMIT = 100.0


@jit(nopython=True, nogil=True, cache=True)
def _sti_block(sca, sca_nodata, slope, slope_nodata, sca_exponent, slope_exponent, row_start, row_end):
    cols = sca.shape[1]
    block = np.empty((row_end - row_start, cols), dtype=np.float64)
    for row in range(row_start, row_end):
        for col in range(cols):
            sca_val = sca[row, col]
            slope_val = slope[row, col]
            if sca_val == sca_nodata or slope_val == slope_nodata:
                block[row - row_start, col] = sca_nodata
            else:
                block[row - row_start, col] = (
                    (sca_exponent + 1.0)
                    * (sca_val / 22.13) ** sca_exponent
                    * math.sin(math.radians(slope_val) / 0.0896) ** slope_exponent
                )
    return block


def sediment_transport_index(
    sca: Raster,
    slope: Raster,
    sca_exponent: float = DEFAULT_SCA_EXPONENT,
    slope_exponent: float = DEFAULT_SLOPE_EXPONENT,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Tuple[Raster, List[str]]:
    """
    Compute the sediment transport index from SCA and slope (degrees).

    Args:
        sca: Specific contributing area, not log-transformed
        slope: Slope in degrees, same grid as sca
        sca_exponent: Exponent n (default 0.4)
        slope_exponent: Exponent m (default 1.3)
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        tuple: (output Raster, list of warning messages)

    Raises:
        InvalidInputError: If the two surfaces differ in shape
    """
    sca.require_same_shape(slope, "SCA and slope surfaces")
    start = time.perf_counter()
    warnings_found: List[str] = []

    out = np.empty(sca.shape, dtype=np.float64)
    collect_row_blocks(
        _sti_block,
        (sca.data, sca.nodata, slope.data, slope.nodata, float(sca_exponent), float(slope_exponent)),
        out,
        num_workers,
        desc="Sediment transport index",
        verbose=verbose,
    )

    output = sca.new_like(data=out)
    output.clip_display_max(1.0)
    output.add_metadata_entry("Created by gridflow's sediment_transport_index tool")
    output.add_metadata_entry(f"SCA exponent: {sca_exponent}")
    output.add_metadata_entry(f"Slope exponent: {slope_exponent}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")

    valid_sca = sca.data[sca.valid_mask()]
    if valid_sca.size and valid_sca.max() < LOW_SCA_WARNING_LIMIT:
        emit_structural_warning(
            "The input SCA data layer contained only low values. It is likely that it has "
            "been log-transformed. This tool requires non-transformed SCA as an input.",
            warnings_found,
            logger,
        )

    return output, warnings_found
