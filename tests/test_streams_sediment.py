"""Tests for stream extraction and the sediment transport index."""

import math

import numpy as np
import pytest

from gridflow.errors import InvalidInputError, StructuralWarning
from gridflow.raster import Raster
from gridflow.sediment import sediment_transport_index
from gridflow.streams import extract_streams

NODATA = -32768.0


class TestExtractStreams:
    """Thresholding a flow accumulation surface."""

    def test_cells_above_threshold_become_streams(self):
        accum = Raster(np.array([[1.0, 5.0, 10.0], [4.0, NODATA, 4.5]]), nodata=NODATA)
        streams = extract_streams(accum, 4.0, num_workers=1)
        np.testing.assert_array_equal(streams.data, [[NODATA, 1, 1], [NODATA, NODATA, 1]])

    def test_zero_background(self):
        accum = Raster(np.array([[1.0, 5.0, NODATA]]), nodata=NODATA)
        streams = extract_streams(accum, 4.0, zero_background=True, num_workers=1)
        np.testing.assert_array_equal(streams.data, [[0, 1, NODATA]])

    def test_metadata(self):
        accum = Raster(np.array([[1.0, 5.0]]))
        streams = extract_streams(accum, 2.0, num_workers=1)
        assert "Threshold: 2.0" in streams.metadata


class TestSedimentTransportIndex:
    """Sediment transport index from SCA and slope."""

    def test_value_matches_formula(self):
        sca = Raster(np.array([[200.0, 500.0]]))
        slope = Raster(np.array([[5.0, 12.0]]))
        output, warnings_found = sediment_transport_index(sca, slope, num_workers=1)
        for col, (a, b) in enumerate([(200.0, 5.0), (500.0, 12.0)]):
            expected = 1.4 * (a / 22.13) ** 0.4 * math.sin(math.radians(b) / 0.0896) ** 1.3
            assert output.data[0, col] == pytest.approx(expected)
        assert warnings_found == []

    def test_custom_exponents(self):
        sca = Raster(np.array([[300.0]]))
        slope = Raster(np.array([[3.0]]))
        output, _ = sediment_transport_index(
            sca, slope, sca_exponent=0.6, slope_exponent=1.0, num_workers=1
        )
        expected = 1.6 * (300.0 / 22.13) ** 0.6 * math.sin(math.radians(3.0) / 0.0896)
        assert output.data[0, 0] == pytest.approx(expected)

    def test_nodata_in_either_input(self):
        sca = Raster(np.array([[NODATA, 200.0, 200.0]]), nodata=NODATA)
        slope = Raster(np.array([[5.0, -9999.0, 5.0]]), nodata=-9999.0)
        output, _ = sediment_transport_index(sca, slope, num_workers=1)
        assert output.data[0, 0] == NODATA
        assert output.data[0, 1] == NODATA
        assert output.data[0, 2] > 0.0

    def test_mismatched_shapes_raise(self):
        sca = Raster(np.ones((3, 3)) * 200.0)
        slope = Raster(np.ones((3, 4)))
        with pytest.raises(InvalidInputError, match="same number of rows and columns"):
            sediment_transport_index(sca, slope)

    def test_low_sca_warns(self):
        sca = Raster(np.array([[2.0, 3.0]]))
        slope = Raster(np.array([[5.0, 5.0]]))
        with pytest.warns(StructuralWarning, match="log-transformed"):
            _, warnings_found = sediment_transport_index(sca, slope, num_workers=1)
        assert len(warnings_found) == 1
