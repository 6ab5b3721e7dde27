"""
Neighbour addressing for grid flow networks.

Direction indices follow a clockwise order starting north:

    7  0  1
    6  x  2
    5  4  3

i.e. 0=N, 1=NE, 2=E, 3=SE, 4=S, 5=SW, 6=W, 7=NW. Offsets are stored as
(row_delta, col_delta) arrays so they can be handed straight to numba kernels.

Two single-direction pointer codings are supported. Both assign one power of
two per direction:

    Native (Whitebox)        ESRI
     64 128   1            32  64 128
     32   x   2            16   x   1
     16   8   4             8   4   2

Pointer values are translated through a 129-slot lookup table resolved once
per run; unmapped slots hold -1 ("no defined direction").
"""

from enum import Enum

import numpy as np

from .errors import InvalidInputError

# (row_delta, col_delta), clockwise from north
D_ROW = np.array([-1, -1, 0, 1, 1, 1, 0, -1], dtype=np.int64)
D_COL = np.array([0, 1, 1, 1, 0, -1, -1, -1], dtype=np.int64)

DIRECTION_NAMES = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")

NO_DIRECTION = -1
NODATA_DIRECTION = -2
POINTER_TABLE_SIZE = 129


class Connectivity(Enum):
    FOUR = 4
    EIGHT = 8


class PointerScheme(Enum):
    NATIVE = "native"
    ESRI = "esri"


# direction index -> pointer code
_POINTER_CODES = {
    PointerScheme.NATIVE: (128, 1, 2, 4, 8, 16, 32, 64),
    PointerScheme.ESRI: (64, 128, 1, 2, 4, 8, 16, 32),
}

_CONNECTIVITY_ALIASES = {
    "4": Connectivity.FOUR,
    "four": Connectivity.FOUR,
    "8": Connectivity.EIGHT,
    "eight": Connectivity.EIGHT,
}

_SCHEME_ALIASES = {
    "native": PointerScheme.NATIVE,
    "whitebox": PointerScheme.NATIVE,
    "esri": PointerScheme.ESRI,
    "alternate": PointerScheme.ESRI,
}


def resolve_connectivity(connectivity) -> Connectivity:
    """Accept a Connectivity member, 4/8, or 'four'/'eight'."""
    if isinstance(connectivity, Connectivity):
        return connectivity
    key = str(connectivity).strip().lower()
    if key not in _CONNECTIVITY_ALIASES:
        raise InvalidInputError(f"Connectivity must be 4 or 8, got {connectivity!r}")
    return _CONNECTIVITY_ALIASES[key]


def resolve_scheme(scheme) -> PointerScheme:
    """Accept a PointerScheme member or 'native'/'esri'/'alternate'."""
    if isinstance(scheme, PointerScheme):
        return scheme
    key = str(scheme).strip().lower()
    if key not in _SCHEME_ALIASES:
        raise InvalidInputError(
            f"Pointer scheme must be one of {sorted(_SCHEME_ALIASES)}, got {scheme!r}"
        )
    return _SCHEME_ALIASES[key]


def active_directions(connectivity=Connectivity.EIGHT) -> np.ndarray:
    """Direction indices that take part in fan-out for a connectivity mode."""
    if resolve_connectivity(connectivity) is Connectivity.FOUR:
        return np.array([0, 2, 4, 6], dtype=np.int64)
    return np.arange(8, dtype=np.int64)


def direction_lengths(cell_size_x: float, cell_size_y: float) -> np.ndarray:
    """Physical distance to the neighbour in each direction."""
    diag = float(np.hypot(cell_size_x, cell_size_y))
    return np.array(
        [cell_size_y, diag, cell_size_x, diag, cell_size_y, diag, cell_size_x, diag],
        dtype=np.float64,
    )


def pointer_table(scheme=PointerScheme.NATIVE) -> np.ndarray:
    """
    Build the 129-slot lookup table mapping pointer codes to direction indices.

    Args:
        scheme: Pointer coding, native (Whitebox) or ESRI

    Returns:
        np.ndarray: int8 table; table[code] is a direction index or -1
    """
    table = np.full(POINTER_TABLE_SIZE, NO_DIRECTION, dtype=np.int8)
    for direction, code in enumerate(_POINTER_CODES[resolve_scheme(scheme)]):
        table[code] = direction
    return table


def pointer_codes(scheme=PointerScheme.NATIVE) -> np.ndarray:
    """Inverse of pointer_table: codes[direction] is the pointer value."""
    return np.array(_POINTER_CODES[resolve_scheme(scheme)], dtype=np.float64)


def pointer_code(direction: int, scheme=PointerScheme.NATIVE) -> int:
    if not 0 <= direction < 8:
        raise InvalidInputError(f"Direction index must be in [0, 7], got {direction}")
    return _POINTER_CODES[resolve_scheme(scheme)][direction]


def direction_from_pointer(value: float, table: np.ndarray) -> int:
    """
    Translate a raw pointer value into a direction index.

    Non-positive, non-integral, out-of-table and unmapped values all return
    NO_DIRECTION.
    """
    if not value > 0 or value >= POINTER_TABLE_SIZE or value != int(value):
        return NO_DIRECTION
    return int(table[int(value)])


def decode_pointer_grid(pointer: np.ndarray, nodata: float, table: np.ndarray) -> np.ndarray:
    """
    Translate a whole pointer surface into direction indices.

    Returns:
        np.ndarray: int8 grid holding a direction index, NO_DIRECTION for
        pits and unmapped codes, or NODATA_DIRECTION for no-data cells
    """
    directions = np.full(pointer.shape, NO_DIRECTION, dtype=np.int8)
    mapped = (
        (pointer > 0)
        & (pointer < POINTER_TABLE_SIZE)
        & (pointer == np.floor(pointer))
        & (pointer != nodata)
    )
    directions[mapped] = table[pointer[mapped].astype(np.int64)]
    directions[pointer == nodata] = NODATA_DIRECTION
    return directions
