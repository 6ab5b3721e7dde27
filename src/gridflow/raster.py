"""
Raster surfaces consumed and produced by the flow-network tools.

A Raster owns a 2-D float64 array plus the metadata the algorithms need
(no-data value, cell sizes, geographic flag) and the georeferencing that
rasterio needs to write it back out. Reads outside the grid return the
no-data value instead of raising.
"""

import logging
import math
from pathlib import Path
from typing import List, Optional, Union

import numpy as np
import rasterio
from affine import Affine

from .config import DEFAULT_NODATA
from .errors import InvalidInputError

logger = logging.getLogger(__name__)


class Raster:
    """
    2-D raster surface with a no-data sentinel.

    Attributes:
        data (np.ndarray): Cell values, float64, shape (rows, columns)
        nodata (float): Value marking cells without data
        cell_size_x (float): Cell width
        cell_size_y (float): Cell height
        is_geographic (bool): Whether cell sizes are in degrees
        transform (Affine): Pixel to world transform
        crs: Coordinate reference system (rasterio CRS or None)
        metadata (list[str]): Provenance entries
        display_min, display_max (float | None): Display range bookkeeping
    """

    def __init__(
        self,
        data: np.ndarray,
        nodata: float = DEFAULT_NODATA,
        cell_size_x: float = 1.0,
        cell_size_y: Optional[float] = None,
        is_geographic: bool = False,
        transform: Optional[Affine] = None,
        crs=None,
    ):
        data = np.asarray(data)
        if data.ndim != 2:
            raise InvalidInputError(f"Raster data must be 2D, got shape {data.shape}")
        if cell_size_y is None:
            cell_size_y = cell_size_x
        if not (cell_size_x > 0 and cell_size_y > 0):
            raise InvalidInputError(
                f"Cell sizes must be positive, got ({cell_size_x}, {cell_size_y})"
            )

        self.data = np.ascontiguousarray(data, dtype=np.float64)
        self.nodata = float(nodata)
        self.cell_size_x = float(cell_size_x)
        self.cell_size_y = float(cell_size_y)
        self.is_geographic = bool(is_geographic)
        if transform is None:
            transform = Affine.translation(0.0, self.rows * self.cell_size_y) * Affine.scale(
                self.cell_size_x, -self.cell_size_y
            )
        self.transform = transform
        self.crs = crs
        self.metadata: List[str] = []
        self.display_min: Optional[float] = None
        self.display_max: Optional[float] = None

    @property
    def rows(self) -> int:
        return self.data.shape[0]

    @property
    def columns(self) -> int:
        return self.data.shape[1]

    @property
    def shape(self):
        return self.data.shape

    @property
    def north(self) -> float:
        top = self.transform.f
        return max(top, top + self.rows * self.transform.e)

    @property
    def south(self) -> float:
        top = self.transform.f
        return min(top, top + self.rows * self.transform.e)

    def __repr__(self):
        return (
            f"Raster(rows={self.rows}, columns={self.columns}, nodata={self.nodata}, "
            f"cell_size=({self.cell_size_x}, {self.cell_size_y}))"
        )

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.rows and 0 <= col < self.columns

    def get_value(self, row: int, col: int) -> float:
        if not self.in_bounds(row, col):
            return self.nodata
        return float(self.data[row, col])

    def set_value(self, row: int, col: int, value: float) -> None:
        self.data[row, col] = value

    def increment(self, row: int, col: int, value: float) -> None:
        self.data[row, col] += value

    def decrement(self, row: int, col: int, value: float) -> None:
        self.data[row, col] -= value

    def get_row(self, row: int) -> np.ndarray:
        return self.data[row].copy()

    def set_row(self, row: int, values) -> None:
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.columns,):
            raise InvalidInputError(
                f"Row data must have {self.columns} values, got shape {values.shape}"
            )
        self.data[row] = values

    def add_metadata_entry(self, text: str) -> None:
        self.metadata.append(text)

    def valid_mask(self) -> np.ndarray:
        """Boolean mask of cells holding data."""
        return self.data != self.nodata

    def new_like(
        self,
        fill: float = 0.0,
        nodata: Optional[float] = None,
        data: Optional[np.ndarray] = None,
    ) -> "Raster":
        """
        Create a same-shaped surface sharing this surface's georeferencing.

        When `data` is given it becomes the new surface's array (no copy if it is
        already contiguous float64) and `fill` is ignored.
        """
        if data is None:
            data = np.full(self.shape, fill, dtype=np.float64)
        elif data.shape != self.shape:
            raise InvalidInputError(
                f"Data shape {data.shape} does not match surface shape {self.shape}"
            )
        out = Raster(
            data,
            nodata=self.nodata if nodata is None else nodata,
            cell_size_x=self.cell_size_x,
            cell_size_y=self.cell_size_y,
            is_geographic=self.is_geographic,
            transform=self.transform,
            crs=self.crs,
        )
        return out

    def same_shape(self, other: "Raster") -> bool:
        return self.shape == other.shape

    def require_same_shape(self, other: "Raster", what: str = "input surfaces") -> None:
        if not self.same_shape(other):
            raise InvalidInputError(
                f"The {what} must have the same number of rows and columns, "
                f"got {self.shape} and {other.shape}"
            )

    def clip_display_max(self, percent: float) -> None:
        """
        Clip the upper tail of the display range.

        Sets display_max so that `percent` percent of the valid cells lie above it.
        The cell values themselves are not modified.
        """
        values = self.data[self.valid_mask()]
        if values.size == 0:
            return
        self.display_min = float(values.min())
        self.display_max = float(np.percentile(values, 100.0 - percent))


def read_raster(path: Union[str, Path]) -> Raster:
    """
    Read the first band of a raster file into a Raster.

    Args:
        path: Path to any raster format readable by rasterio

    Returns:
        Raster: Surface with cell sizes taken from the affine transform

    Raises:
        FileNotFoundError: If the file does not exist
        rasterio.errors.RasterioIOError: If rasterio cannot read the file
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    logger.debug(f"Reading raster {path}")
    with rasterio.open(path) as src:
        data = src.read(1).astype(np.float64)
        nodata = src.nodata
        transform = src.transform
        crs = src.crs
        tags = src.tags()

    if nodata is None or math.isnan(nodata):
        nodata = DEFAULT_NODATA
    data[np.isnan(data)] = nodata

    raster = Raster(
        data,
        nodata=nodata,
        cell_size_x=abs(transform.a),
        cell_size_y=abs(transform.e),
        is_geographic=bool(crs is not None and crs.is_geographic),
        transform=transform,
        crs=crs,
    )
    for key in sorted(k for k in tags if k.startswith("GRIDFLOW_META_")):
        raster.add_metadata_entry(tags[key])

    logger.info(f"Read {path.name}: {raster.rows} x {raster.columns}, nodata={raster.nodata}")
    return raster


def write_raster(raster: Raster, path: Union[str, Path]) -> Path:
    """
    Write a Raster to a single-band GeoTIFF.

    Metadata entries and the display range are stored as GeoTIFF tags.

    Args:
        raster: Surface to write
        path: Output file path

    Returns:
        Path: The written file path
    """
    path = Path(path)
    height, width = raster.shape

    tags = {f"GRIDFLOW_META_{i:03d}": entry for i, entry in enumerate(raster.metadata)}
    if raster.display_min is not None:
        tags["GRIDFLOW_DISPLAY_MIN"] = str(raster.display_min)
    if raster.display_max is not None:
        tags["GRIDFLOW_DISPLAY_MAX"] = str(raster.display_max)

    with rasterio.open(
        path,
        "w",
        driver="GTiff",
        height=height,
        width=width,
        count=1,
        dtype="float64",
        crs=raster.crs,
        transform=raster.transform,
        nodata=raster.nodata,
        compress="lzw",
    ) as dst:
        dst.write(raster.data, 1)
        if tags:
            dst.update_tags(**tags)

    logger.info(f"Wrote {path}")
    return path
