"""Pytest configuration and fixtures for gridflow tests."""
import sys
from pathlib import Path

# Add src/ to Python path for imports
src_root = Path(__file__).parent.parent / "src"
if str(src_root) not in sys.path:
    sys.path.insert(0, str(src_root))

import pytest
import numpy as np

from gridflow.raster import Raster

NODATA = -32768.0


@pytest.fixture
def ramp_dem():
    """1 x 5 surface strictly decreasing left to right."""
    return Raster(np.array([[5.0, 4.0, 3.0, 2.0, 1.0]]), nodata=NODATA)


@pytest.fixture
def pit_dem():
    """3 x 3 surface whose centre is lower than all 8 neighbours."""
    data = np.full((3, 3), 10.0)
    data[1, 1] = 1.0
    return Raster(data, nodata=NODATA)


@pytest.fixture
def rough_dem():
    """Random 24 x 30 surface with a few no-data cells."""
    rng = np.random.default_rng(42)
    data = rng.uniform(100.0, 200.0, size=(24, 30))
    data[5, 7] = NODATA
    data[0, 0] = NODATA
    data[12, 20:23] = NODATA
    return Raster(data, nodata=NODATA, cell_size_x=10.0)


@pytest.fixture
def cone_dem():
    """Smooth 70 x 9 surface draining to the bottom-right corner."""
    rows, cols = np.mgrid[0:70, 0:9]
    data = 1000.0 - 3.0 * rows - 2.0 * cols
    return Raster(data.astype(np.float64), nodata=NODATA)


@pytest.fixture
def write_geotiff(tmp_path):
    """Factory writing a Raster to a GeoTIFF in tmp_path."""
    from gridflow.raster import write_raster

    def _write(raster, name):
        return write_raster(raster, tmp_path / name)

    return _write
