"""Tests for neighbour addressing and pointer lookup tables."""

import numpy as np
import pytest

from gridflow.addressing import (
    D_COL,
    D_ROW,
    NO_DIRECTION,
    NODATA_DIRECTION,
    Connectivity,
    PointerScheme,
    active_directions,
    decode_pointer_grid,
    direction_from_pointer,
    direction_lengths,
    pointer_code,
    pointer_codes,
    pointer_table,
    resolve_connectivity,
    resolve_scheme,
)
from gridflow.errors import InvalidInputError


class TestOffsets:
    """Direction offsets and distances."""

    def test_offsets_are_clockwise_from_north(self):
        assert (D_ROW[0], D_COL[0]) == (-1, 0)
        assert (D_ROW[2], D_COL[2]) == (0, 1)
        assert (D_ROW[4], D_COL[4]) == (1, 0)
        assert (D_ROW[6], D_COL[6]) == (0, -1)

    def test_opposite_direction_is_four_steps_away(self):
        for d in range(8):
            opposite = (d + 4) % 8
            assert D_ROW[d] == -D_ROW[opposite]
            assert D_COL[d] == -D_COL[opposite]

    def test_four_connectivity_uses_cardinal_directions_only(self):
        np.testing.assert_array_equal(active_directions(4), [0, 2, 4, 6])
        np.testing.assert_array_equal(active_directions("eight"), np.arange(8))

    def test_direction_lengths_anisotropic(self):
        lengths = direction_lengths(2.0, 3.0)
        assert lengths[0] == 3.0
        assert lengths[2] == 2.0
        assert lengths[1] == pytest.approx(np.hypot(2.0, 3.0))


class TestPointerTables:
    """Pointer code lookup tables for both schemes."""

    @pytest.mark.parametrize("scheme", ["native", "esri"])
    def test_single_bit_codes_map_to_unique_directions(self, scheme):
        table = pointer_table(scheme)
        codes = [1, 2, 4, 8, 16, 32, 64, 128]
        directions = [int(table[c]) for c in codes]
        assert sorted(directions) == list(range(8))

    @pytest.mark.parametrize("scheme", ["native", "esri"])
    def test_codes_and_table_are_inverse(self, scheme):
        table = pointer_table(scheme)
        codes = pointer_codes(scheme)
        for d in range(8):
            assert table[int(codes[d])] == d
            assert pointer_code(d, scheme) == int(codes[d])

    def test_unmapped_slots_hold_no_direction(self):
        table = pointer_table("native")
        assert table.shape == (129,)
        assert table[0] == NO_DIRECTION
        assert table[3] == NO_DIRECTION

    def test_native_and_esri_east_codes(self):
        assert pointer_code(2, PointerScheme.NATIVE) == 2
        assert pointer_code(2, PointerScheme.ESRI) == 1

    def test_direction_from_pointer_rejects_bad_values(self):
        table = pointer_table()
        assert direction_from_pointer(0.0, table) == NO_DIRECTION
        assert direction_from_pointer(-4.0, table) == NO_DIRECTION
        assert direction_from_pointer(2.5, table) == NO_DIRECTION
        assert direction_from_pointer(500.0, table) == NO_DIRECTION
        assert direction_from_pointer(8.0, table) == 4

    def test_decode_pointer_grid(self):
        pointer = np.array([[2.0, 0.0, -1.0], [3.0, 128.0, -32768.0]])
        decoded = decode_pointer_grid(pointer, -32768.0, pointer_table("native"))
        np.testing.assert_array_equal(
            decoded, [[2, NO_DIRECTION, NO_DIRECTION], [NO_DIRECTION, 0, NODATA_DIRECTION]]
        )


class TestResolvers:
    """Parameter parsing for connectivity and scheme selectors."""

    def test_resolve_connectivity_accepts_aliases(self):
        assert resolve_connectivity(8) is Connectivity.EIGHT
        assert resolve_connectivity("four") is Connectivity.FOUR

    def test_resolve_connectivity_rejects_other_values(self):
        with pytest.raises(InvalidInputError, match="Connectivity"):
            resolve_connectivity(6)

    def test_resolve_scheme_accepts_aliases(self):
        assert resolve_scheme("Whitebox") is PointerScheme.NATIVE
        assert resolve_scheme("alternate") is PointerScheme.ESRI

    def test_resolve_scheme_rejects_unknown(self):
        with pytest.raises(InvalidInputError, match="Pointer scheme"):
            resolve_scheme("taudem")

    def test_pointer_code_rejects_bad_direction(self):
        with pytest.raises(InvalidInputError):
            pointer_code(8)
