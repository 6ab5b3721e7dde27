"""Tests for FD8 and D8 flow accumulation."""

import math
import warnings

import numpy as np
import pytest

from gridflow.accumulation import (
    d8_flow_accumulation,
    fd8_flow_accumulation,
    output_scale_factor,
    parse_out_type,
)
from gridflow.addressing import D_COL, D_ROW
from gridflow.errors import InvalidInputError, StructuralWarning
from gridflow.raster import Raster

NODATA = -32768.0


def terminal_cells(raster):
    """Valid cells without any strictly lower valid neighbour."""
    data, nodata = raster.data, raster.nodata
    rows, cols = data.shape
    mask = np.zeros(data.shape, dtype=bool)
    for r in range(rows):
        for c in range(cols):
            if data[r, c] == nodata:
                continue
            lower = False
            for d in range(8):
                rn, cn = r + D_ROW[d], c + D_COL[d]
                if 0 <= rn < rows and 0 <= cn < cols:
                    if data[rn, cn] != nodata and data[rn, cn] < data[r, c]:
                        lower = True
            mask[r, c] = not lower
    return mask


class TestOutputUnits:
    """Output unit parsing and scale factors."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("cells", "cells"),
            ("number of upslope grid cells", "cells"),
            ("ca", "ca"),
            ("Catchment Area", "ca"),
            ("sca", "sca"),
            ("specific contributing area", "sca"),
        ],
    )
    def test_parse_out_type(self, text, expected):
        assert parse_out_type(text) == expected

    def test_parse_out_type_rejects_unknown(self):
        with pytest.raises(InvalidInputError, match="Output type"):
            parse_out_type("volume")

    def test_scale_factors(self):
        assert output_scale_factor("cells", 2.0, 4.0) == 1.0
        assert output_scale_factor("ca", 2.0, 4.0) == 8.0
        assert output_scale_factor("sca", 2.0, 4.0) == pytest.approx(8.0 / 3.0)


class TestFD8Accumulation:
    """FD8 accumulation from an elevation surface."""

    def test_ramp_accumulates_one_cell_per_step(self, ramp_dem):
        result = fd8_flow_accumulation(ramp_dem, out_type="cells", num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1, 2, 3, 4, 5]])
        assert result.exhausted
        assert result.warnings == []

    def test_exponent_irrelevant_on_single_path(self, ramp_dem):
        result = fd8_flow_accumulation(ramp_dem, exponent=5.0, out_type="cells", num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1, 2, 3, 4, 5]])

    def test_interior_pit_warns_but_completes(self, pit_dem):
        with pytest.warns(StructuralWarning, match="Interior pit"):
            result = fd8_flow_accumulation(pit_dem, out_type="cells", num_workers=1)
        assert result.exhausted
        assert result.output.data[1, 1] == pytest.approx(9.0)
        assert len(result.warnings) == 1

    def test_split_is_even_for_equal_drops(self):
        dem = Raster(np.array([[1.0, 5.0, 1.0]]))
        result = fd8_flow_accumulation(dem, out_type="cells", num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1.5, 1.0, 1.5]])

    def test_split_weights_follow_exponent(self):
        dem = Raster(np.array([[3.0, 5.0, 1.0]]))
        result = fd8_flow_accumulation(dem, exponent=1.0, out_type="cells", num_workers=1)
        # drops of 2 and 4 share one cell 1:2
        np.testing.assert_allclose(result.output.data, [[1.0 + 1.0 / 3.0, 1.0, 1.0 + 2.0 / 3.0]])

    def test_threshold_collapses_to_steepest_descent(self):
        dem = Raster(np.array([[1.0, 5.0, 1.0]]))
        result = fd8_flow_accumulation(dem, threshold=1.0, out_type="cells", num_workers=1)
        # equal slopes, first in clockwise order (east) wins
        np.testing.assert_allclose(result.output.data, [[1.0, 1.0, 2.0]])
        assert result.exhausted

    def test_four_connectivity_ignores_diagonals(self):
        dem = Raster(np.array([[1.0, 9.0, 1.0], [9.0, 5.0, 9.0], [1.0, 9.0, 1.0]]))
        with pytest.warns(StructuralWarning, match="Interior pit"):
            result = fd8_flow_accumulation(
                dem, out_type="cells", connectivity=4, num_workers=1
            )
        # each ridge cell splits between two corners (drop 8) and the centre (drop 4)
        w8, w4 = 8.0 ** 1.1, 4.0 ** 1.1
        corner = 1.0 + 2.0 * w8 / (2.0 * w8 + w4)
        centre = 1.0 + 4.0 * w4 / (2.0 * w8 + w4)
        np.testing.assert_allclose(
            result.output.data,
            [[corner, 1.0, corner], [1.0, centre, 1.0], [corner, 1.0, corner]],
        )
        assert result.output.data[[0, 0, 1, 2, 2], [0, 2, 1, 0, 2]].sum() == pytest.approx(9.0)

    def test_eight_connectivity_drains_centre_to_corners(self):
        dem = Raster(np.array([[1.0, 9.0, 1.0], [9.0, 5.0, 9.0], [1.0, 9.0, 1.0]]))
        result = fd8_flow_accumulation(dem, out_type="cells", num_workers=1)
        assert result.warnings == []
        assert result.output.data[1, 1] > 1.0
        assert result.output.data[0, 0] == pytest.approx(result.output.data[2, 2])
        assert result.output.data[[0, 0, 2, 2], [0, 2, 0, 2]].sum() == pytest.approx(9.0)

    def test_conservation_at_terminal_cells(self, rough_dem):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", StructuralWarning)
            result = fd8_flow_accumulation(rough_dem, out_type="cells", num_workers=3)
        valid = rough_dem.valid_mask()
        terminal = terminal_cells(rough_dem)
        assert result.output.data[terminal].sum() == pytest.approx(float(valid.sum()))

    def test_monotonicity_and_exhaustion(self, rough_dem):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", StructuralWarning)
            result = fd8_flow_accumulation(rough_dem, out_type="cells", num_workers=2)
        valid = rough_dem.valid_mask()
        assert np.all(result.output.data[valid] >= 1.0)
        assert result.num_resolved == result.num_valid == int(valid.sum())

    def test_nodata_is_preserved(self, rough_dem):
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", StructuralWarning)
            result = fd8_flow_accumulation(rough_dem, num_workers=1)
        assert result.output.data[5, 7] == NODATA
        assert result.output.nodata == NODATA

    def test_outlet_collects_whole_cone(self, cone_dem):
        result = fd8_flow_accumulation(cone_dem, out_type="cells", num_workers=4)
        assert result.output.data[-1, -1] == pytest.approx(cone_dem.data.size)

    def test_sca_and_log_transform(self, ramp_dem):
        ramp = Raster(ramp_dem.data, cell_size_x=10.0)
        result = fd8_flow_accumulation(ramp, out_type="sca", log_transform=True, num_workers=1)
        expected = np.log(np.array([1, 2, 3, 4, 5]) * 10.0)
        np.testing.assert_allclose(result.output.data[0], expected)

    def test_catchment_area(self, ramp_dem):
        ramp = Raster(ramp_dem.data, cell_size_x=2.0, cell_size_y=3.0)
        result = fd8_flow_accumulation(ramp, out_type="ca", num_workers=1)
        np.testing.assert_allclose(result.output.data[0], np.array([1, 2, 3, 4, 5]) * 6.0)

    def test_clip_sets_display_range_only(self, cone_dem):
        result = fd8_flow_accumulation(cone_dem, out_type="cells", clip=True, num_workers=1)
        assert result.output.display_max is not None
        assert result.output.display_max < result.output.data.max()
        assert result.output.data[-1, -1] == pytest.approx(cone_dem.data.size)

    def test_metadata_records_parameters(self, ramp_dem):
        result = fd8_flow_accumulation(ramp_dem, exponent=1.5, num_workers=1)
        entries = "\n".join(result.output.metadata)
        assert "fd8_flow_accumulation" in entries
        assert "Exponent: 1.5" in entries
        assert "Elapsed Time" in entries

    def test_input_is_not_modified(self, rough_dem):
        before = rough_dem.data.copy()
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", StructuralWarning)
            fd8_flow_accumulation(rough_dem, num_workers=2)
        np.testing.assert_array_equal(rough_dem.data, before)

    @pytest.mark.parametrize(
        "kwargs",
        [{"exponent": math.nan}, {"threshold": 0.0}, {"out_type": "bogus"}, {"connectivity": 6}],
    )
    def test_invalid_parameters_raise(self, ramp_dem, kwargs):
        with pytest.raises(InvalidInputError):
            fd8_flow_accumulation(ramp_dem, num_workers=1, **kwargs)


class TestD8Accumulation:
    """D8 accumulation from a pointer surface."""

    def test_chain_of_east_pointers(self):
        pointer = Raster(np.array([[2.0, 2.0, 2.0, 2.0, 0.0]]))
        result = d8_flow_accumulation(pointer, num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1, 2, 3, 4, 5]])
        assert result.exhausted

    def test_esri_scheme(self):
        pointer = Raster(np.array([[1.0, 1.0, 1.0, 1.0, 0.0]]))
        result = d8_flow_accumulation(pointer, scheme="esri", num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1, 2, 3, 4, 5]])

    def test_flow_into_nodata_stops(self):
        pointer = Raster(np.array([[2.0, 2.0, NODATA, 0.0]]), nodata=NODATA)
        result = d8_flow_accumulation(pointer, num_workers=1)
        np.testing.assert_allclose(result.output.data, [[1, 2, NODATA, 1]])
        assert result.exhausted

    def test_cycle_is_reported(self):
        # native: 2 = E, 32 = W
        pointer = Raster(np.array([[2.0, 32.0, 0.0]]))
        with pytest.warns(StructuralWarning, match="cycle"):
            result = d8_flow_accumulation(pointer, num_workers=1)
        assert not result.exhausted
        assert result.num_resolved == 1
        assert len(result.warnings) == 1
