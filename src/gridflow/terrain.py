"""
Row-parallel terrain tools working on a 3 x 3 or moving-window neighbourhood.

- hillshade: illumination of the surface from a point light source
- elev_percentile: percentile of the centre elevation within a window
- percent_elev_range: position of the centre elevation in the window range
- pennock_landform_class: hillslope zones from slope and curvature
  (Pennock, Zebarth & de Jong, 1987)

The 3 x 3 tools read neighbours with the clockwise-from-north order of
addressing.py; missing neighbours (no-data or off the grid) take the centre
value. Surfaces in geographic coordinates get a z-factor that converts
elevation units to degrees at the mid-latitude of the grid.
"""

import logging
import math
import time
from typing import Optional

import numpy as np
from numba import jit

from .addressing import D_COL, D_ROW
from .config import (
    DEFAULT_ALTITUDE,
    DEFAULT_AZIMUTH,
    DEFAULT_PERCENTILE_FILTER,
    DEFAULT_PLAN_THRESHOLD,
    DEFAULT_PROFILE_THRESHOLD,
    DEFAULT_RANGE_FILTER,
    DEFAULT_SIG_DIGITS,
    DEFAULT_SLOPE_THRESHOLD,
    LANDFORM_NODATA,
)
from .errors import InvalidInputError
from .parallel import collect_row_blocks
from .raster import Raster
from .utils.helpers import format_elapsed_time

logger = logging.getLogger(__name__)

HILLSHADE_SCALE = 32767.0
METRES_PER_DEGREE = 113200.0

LANDFORM_CLASSES = {
    1: "Convergent Footslope",
    2: "Divergent Footslope",
    3: "Convergent Shoulder",
    4: "Divergent Shoulder",
    5: "Convergent Backslope",
    6: "Divergent Backslope",
    7: "Level",
}


def geographic_z_factor(raster: Raster, z_factor: float) -> float:
    """
    Return the z-factor to use for a surface.

    Geographic surfaces measure cell sizes in degrees, so elevations are
    converted with 1 / (113200 * cos(mid-latitude)). Projected surfaces keep
    the given z_factor.
    """
    if not raster.is_geographic:
        return z_factor
    mid_lat = (raster.north + raster.south) / 2.0
    if -90.0 <= mid_lat <= 90.0:
        return 1.0 / (METRES_PER_DEGREE * math.cos(math.radians(mid_lat)))
    return z_factor


def odd_filter_size(size) -> int:
    """Clamp a window size to at least 3 and round even sizes up to odd."""
    size = int(size)
    if size < 3:
        size = 3
    if size % 2 == 0:
        size += 1
    return size


@jit(nopython=True, nogil=True, cache=True)
def _scaled_neighbours(dem, nodata, row, col, z, z_factor, n):
    """Fill n with the z-scaled 8 neighbours of (row, col); gaps take z."""
    rows, cols = dem.shape
    for d in range(8):
        row_n = row + D_ROW[d]
        col_n = col + D_COL[d]
        if row_n < 0 or row_n >= rows or col_n < 0 or col_n >= cols:
            n[d] = z
            continue
        z_n = dem[row_n, col_n]
        if z_n == nodata:
            n[d] = z
        else:
            n[d] = z_n * z_factor


@jit(nopython=True, nogil=True, cache=True)
def _hillshade_block(
    dem, nodata, z_factor, eight_res, azimuth, sin_theta, cos_theta, row_start, row_end
):
    cols = dem.shape[1]
    block = np.empty((row_end - row_start, cols), dtype=np.float64)
    block[:] = nodata
    n = np.empty(8, dtype=np.float64)

    for row in range(row_start, row_end):
        for col in range(cols):
            if dem[row, col] == nodata:
                continue
            z = dem[row, col] * z_factor
            _scaled_neighbours(dem, nodata, row, col, z, z_factor, n)
            # Sobel-style gradients: N=0, NE=1, E=2, SE=3, S=4, SW=5, W=6, NW=7
            fy = (n[7] - n[5] + 2.0 * (n[0] - n[4]) + n[1] - n[3]) / eight_res
            fx = (n[3] - n[5] + 2.0 * (n[2] - n[6]) + n[1] - n[7]) / eight_res
            if fx != 0.0:
                tan_slope = math.sqrt(fx * fx + fy * fy)
                aspect = math.radians(
                    180.0 - math.degrees(math.atan(fy / fx)) + 90.0 * math.copysign(1.0, fx)
                )
                term1 = tan_slope / math.sqrt(1.0 + tan_slope * tan_slope)
                term2 = sin_theta / tan_slope
                term3 = cos_theta * math.sin(azimuth - aspect)
                value = term1 * (term2 - term3)
            else:
                value = 0.5
            value *= HILLSHADE_SCALE
            if value < 0.0:
                value = 0.0
            block[row - row_start, col] = round(value)

    return block


def hillshade(
    dem: Raster,
    azimuth: float = DEFAULT_AZIMUTH,
    altitude: float = DEFAULT_ALTITUDE,
    z_factor: float = 1.0,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Raster:
    """
    Compute a hillshade (shaded relief) surface.

    Args:
        dem: Elevation surface (read only)
        azimuth: Light source direction in degrees clockwise from north
        altitude: Light source elevation angle in degrees
        z_factor: Elevation unit conversion; replaced automatically for
            geographic surfaces
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        Raster: Illumination values in [0, 32767]; the display range is
        clipped at the 1% tails
    """
    start = time.perf_counter()
    z_factor = geographic_z_factor(dem, z_factor)
    args = (
        dem.data,
        dem.nodata,
        float(z_factor),
        dem.cell_size_x * 8.0,
        math.radians(azimuth - 90.0),
        math.sin(math.radians(altitude)),
        math.cos(math.radians(altitude)),
    )
    out = np.empty(dem.shape, dtype=np.float64)
    collect_row_blocks(_hillshade_block, args, out, num_workers, desc="Hillshade", verbose=verbose)

    output = dem.new_like(data=out)
    _clip_hillshade_display(output)
    output.add_metadata_entry("Created by gridflow's hillshade tool")
    output.add_metadata_entry(f"Azimuth: {azimuth}")
    output.add_metadata_entry(f"Altitude: {altitude}")
    output.add_metadata_entry(f"Z-factor: {z_factor}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")
    logger.info(
        f"Hillshade: z-factor {z_factor:.6g}, "
        f"display range {output.display_min}-{output.display_max}"
    )
    return output


def _clip_hillshade_display(output: Raster, clip_percent: float = 0.01) -> None:
    """Set the display range so 1% of cells fall below and above it."""
    values = output.data[output.valid_mask()].astype(np.int64)
    if values.size == 0:
        return
    histo = np.bincount(values, minlength=int(HILLSHADE_SCALE) + 1)
    target = values.size * clip_percent
    new_min = int(np.argmax(np.cumsum(histo) >= target))
    new_max = histo.size - 1 - int(np.argmax(np.cumsum(histo[::-1]) >= target))
    if new_max > new_min:
        output.display_min = float(new_min)
        output.display_max = float(new_max)


@jit(nopython=True, nogil=True, cache=True)
def _elev_percentile_block(dem, nodata, half_x, half_y, multiplier, row_start, row_end):
    rows, cols = dem.shape
    block = np.empty((row_end - row_start, cols), dtype=np.float64)
    block[:] = nodata

    for row in range(row_start, row_end):
        r0 = max(0, row - half_y)
        r1 = min(rows, row + half_y + 1)
        for col in range(cols):
            z = dem[row, col]
            if z == nodata:
                continue
            bin_val = math.floor(z * multiplier)
            n = 0
            n_less_than = 0
            for row2 in range(r0, r1):
                for col2 in range(max(0, col - half_x), min(cols, col + half_x + 1)):
                    z_n = dem[row2, col2]
                    if z_n != nodata:
                        n += 1
                        if math.floor(z_n * multiplier) < bin_val:
                            n_less_than += 1
            block[row - row_start, col] = n_less_than / n * 100.0

    return block


def elev_percentile(
    dem: Raster,
    filter_size_x: int = DEFAULT_PERCENTILE_FILTER,
    filter_size_y: Optional[int] = None,
    sig_digits: int = DEFAULT_SIG_DIGITS,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Raster:
    """
    Percentage of valid window cells whose elevation is below the centre.

    Elevations are binned to `sig_digits` decimal places before comparing, so
    differences smaller than the binning precision count as ties.

    Args:
        dem: Elevation surface (read only)
        filter_size_x: Window width in cells (forced odd, at least 3)
        filter_size_y: Window height in cells; defaults to filter_size_x
        sig_digits: Decimal places kept when binning elevations
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        Raster: Percentiles in [0, 100)

    Raises:
        InvalidInputError: If sig_digits is negative
    """
    if sig_digits < 0:
        raise InvalidInputError(f"Significant digits must be >= 0, got {sig_digits}")
    size_x = odd_filter_size(filter_size_x)
    size_y = odd_filter_size(filter_size_x if filter_size_y is None else filter_size_y)
    start = time.perf_counter()

    args = (dem.data, dem.nodata, size_x // 2, size_y // 2, 10.0 ** int(sig_digits))
    out = np.empty(dem.shape, dtype=np.float64)
    collect_row_blocks(
        _elev_percentile_block, args, out, num_workers, desc="Elevation percentile", verbose=verbose
    )

    output = dem.new_like(data=out)
    output.display_min = 0.0
    output.display_max = 100.0
    output.add_metadata_entry("Created by gridflow's elev_percentile tool")
    output.add_metadata_entry(f"Filter size x: {size_x}")
    output.add_metadata_entry(f"Filter size y: {size_y}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")
    return output


@jit(nopython=True, nogil=True, cache=True)
def _percent_elev_range_block(dem, nodata, half_x, half_y, row_start, row_end):
    rows, cols = dem.shape
    block = np.empty((row_end - row_start, cols), dtype=np.float64)
    block[:] = nodata

    for row in range(row_start, row_end):
        r0 = max(0, row - half_y)
        r1 = min(rows, row + half_y + 1)
        for col in range(cols):
            z = dem[row, col]
            if z == nodata:
                continue
            min_val = np.inf
            max_val = -np.inf
            for row2 in range(r0, r1):
                for col2 in range(max(0, col - half_x), min(cols, col + half_x + 1)):
                    z_n = dem[row2, col2]
                    if z_n != nodata:
                        if z_n < min_val:
                            min_val = z_n
                        if z_n > max_val:
                            max_val = z_n
            value_range = max_val - min_val
            if value_range > 0.0:
                block[row - row_start, col] = (z - min_val) / value_range * 100.0
            else:
                block[row - row_start, col] = 0.0

    return block


def percent_elev_range(
    dem: Raster,
    filter_size_x: int = DEFAULT_RANGE_FILTER,
    filter_size_y: Optional[int] = None,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Raster:
    """
    Centre elevation as a percentage of the local elevation range.

    Args:
        dem: Elevation surface (read only)
        filter_size_x: Window width in cells (forced odd, at least 3)
        filter_size_y: Window height in cells; defaults to filter_size_x
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        Raster: Values in [0, 100]; 0 where the window is flat
    """
    size_x = odd_filter_size(filter_size_x)
    size_y = odd_filter_size(filter_size_x if filter_size_y is None else filter_size_y)
    start = time.perf_counter()

    out = np.empty(dem.shape, dtype=np.float64)
    collect_row_blocks(
        _percent_elev_range_block,
        (dem.data, dem.nodata, size_x // 2, size_y // 2),
        out,
        num_workers,
        desc="Percent elevation range",
        verbose=verbose,
    )

    output = dem.new_like(data=out)
    output.display_min = 0.0
    output.display_max = 100.0
    output.add_metadata_entry("Created by gridflow's percent_elev_range tool")
    output.add_metadata_entry(f"Filter size x: {size_x}")
    output.add_metadata_entry(f"Filter size y: {size_y}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")
    return output


@jit(nopython=True, nogil=True, cache=True)
def _landform_block(
    dem, nodata, out_nodata, z_factor, cell_size, slope_t, prof_t, plan_t, row_start, row_end
):
    cols = dem.shape[1]
    block = np.empty((row_end - row_start, cols), dtype=np.float64)
    block[:] = out_nodata
    n = np.empty(8, dtype=np.float64)
    two_res = 2.0 * cell_size
    res_sqrd = cell_size * cell_size
    four_res_sqrd = 4.0 * res_sqrd
    eight_res = 8.0 * cell_size

    for row in range(row_start, row_end):
        for col in range(cols):
            if dem[row, col] == nodata:
                continue
            z = dem[row, col] * z_factor
            _scaled_neighbours(dem, nodata, row, col, z, z_factor, n)

            zx = (n[2] - n[6]) / two_res
            zy = (n[0] - n[4]) / two_res
            p = zx * zx + zy * zy
            if p == 0.0:
                block[row - row_start, col] = 7.0
                continue

            zxx = (n[2] - 2.0 * z + n[6]) / res_sqrd
            zyy = (n[0] - 2.0 * z + n[4]) / res_sqrd
            zxy = (-n[7] + n[1] + n[5] - n[3]) / four_res_sqrd
            zx2 = zx * zx
            zy2 = zy * zy
            q = p + 1.0
            fy = (n[7] - n[5] + 2.0 * (n[0] - n[4]) + n[1] - n[3]) / eight_res
            fx = (n[3] - n[5] + 2.0 * (n[2] - n[6]) + n[1] - n[7]) / eight_res
            slope = math.degrees(math.atan(math.sqrt(fx * fx + fy * fy)))
            plan = -math.degrees((zxx * zy2 - 2.0 * zxy * zx * zy + zyy * zx2) / p ** 1.5)
            prof = -math.degrees(
                (zxx * zx2 - 2.0 * zxy * zx * zy + zyy * zy2) / (p * q ** 1.5)
            )

            steep = slope > slope_t
            back = prof >= -prof_t and prof < prof_t
            value = out_nodata
            if steep and prof < -prof_t and plan <= -plan_t:
                value = 1.0
            elif steep and prof < -prof_t and plan > plan_t:
                value = 2.0
            elif steep and prof > prof_t and plan <= plan_t:
                value = 3.0
            elif steep and prof > prof_t and plan > plan_t:
                value = 4.0
            elif steep and back and plan <= -plan_t:
                value = 5.0
            elif steep and back and plan > plan_t:
                value = 6.0
            elif not steep:
                value = 7.0
            block[row - row_start, col] = value

    return block


def pennock_landform_class(
    dem: Raster,
    slope_threshold: float = DEFAULT_SLOPE_THRESHOLD,
    prof_threshold: float = DEFAULT_PROFILE_THRESHOLD,
    plan_threshold: float = DEFAULT_PLAN_THRESHOLD,
    z_factor: float = 1.0,
    num_workers: Optional[int] = None,
    verbose: bool = False,
) -> Raster:
    """
    Classify hillslope zones from slope, profile curvature and plan curvature.

    Classes (see LANDFORM_CLASSES): 1 convergent footslope, 2 divergent
    footslope, 3 convergent shoulder, 4 divergent shoulder, 5 convergent
    backslope, 6 divergent backslope, 7 level. Cells matching no class keep
    the output no-data value (-128).

    Args:
        dem: Elevation surface (read only); some smoothing usually helps
        slope_threshold: Slope in degrees at or below which a cell is level
        prof_threshold: Profile curvature threshold (degrees)
        plan_threshold: Plan curvature threshold (degrees)
        z_factor: Elevation unit conversion; replaced automatically for
            geographic surfaces
        num_workers: Worker count for the row phase
        verbose: Show progress

    Returns:
        Raster: Class codes with no-data -128
    """
    start = time.perf_counter()
    z_factor = geographic_z_factor(dem, z_factor)
    args = (
        dem.data,
        dem.nodata,
        LANDFORM_NODATA,
        float(z_factor),
        dem.cell_size_x,
        float(slope_threshold),
        float(prof_threshold),
        float(plan_threshold),
    )
    out = np.empty(dem.shape, dtype=np.float64)
    collect_row_blocks(_landform_block, args, out, num_workers, desc="Landform classes", verbose=verbose)

    output = dem.new_like(nodata=LANDFORM_NODATA, data=out)
    output.add_metadata_entry("Created by gridflow's pennock_landform_class tool")
    output.add_metadata_entry(f"Z-factor: {z_factor}")
    output.add_metadata_entry(f"Slope threshold: {slope_threshold}")
    output.add_metadata_entry(f"Profile curvature threshold: {prof_threshold}")
    output.add_metadata_entry(f"Plan curvature threshold: {plan_threshold}")
    output.add_metadata_entry(f"Elapsed Time (excluding I/O): {format_elapsed_time(start)}")
    output.add_metadata_entry("CLASSIFICATION KEY")
    for code, name in LANDFORM_CLASSES.items():
        output.add_metadata_entry(f"{code}      {name}")

    counts = {code: int(np.count_nonzero(out == code)) for code in LANDFORM_CLASSES}
    logger.debug(f"Landform class counts: {counts}")
    return output
