"""
gridflow - flow-network analysis on gridded elevation surfaces.

Flow accumulation (FD8 and D8), D8 pointers, drainage basins, region
labelling, stream extraction, the sediment transport index, terrain
derivatives and colour-composite tools, all working on
in-memory Raster surfaces read and written with rasterio.
"""

from .accumulation import AccumulationResult, d8_flow_accumulation, fd8_flow_accumulation
from .addressing import Connectivity, PointerScheme, pointer_code, pointer_table
from .basins import BasinResult, basins
from .clump import ClumpResult, clump
from .errors import InvalidInputError, StructuralWarning
from .imaging import split_colour_composite, write_function_memory_insertion
from .indegree import InDegreeResult, estimate_in_degree
from .pointer import d8_pointer
from .raster import Raster, read_raster, write_raster
from .sediment import sediment_transport_index
from .streams import extract_streams
from .terrain import elev_percentile, hillshade, pennock_landform_class, percent_elev_range

__version__ = "0.1.0"

__all__ = [
    "AccumulationResult",
    "BasinResult",
    "ClumpResult",
    "Connectivity",
    "InDegreeResult",
    "InvalidInputError",
    "PointerScheme",
    "Raster",
    "StructuralWarning",
    "basins",
    "clump",
    "d8_flow_accumulation",
    "d8_pointer",
    "elev_percentile",
    "estimate_in_degree",
    "extract_streams",
    "fd8_flow_accumulation",
    "hillshade",
    "pennock_landform_class",
    "percent_elev_range",
    "pointer_code",
    "pointer_table",
    "read_raster",
    "sediment_transport_index",
    "split_colour_composite",
    "write_raster",
    "write_function_memory_insertion",
]
