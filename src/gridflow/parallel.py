"""
Worker pool for the row-parallel phases.

Rows are split into contiguous blocks. Each block is computed by a worker
thread running a numba `nogil` kernel that only reads the shared input
surfaces and writes into a buffer it allocates itself. Finished blocks are
handed back to the calling (coordinating) thread in completion order together
with their starting row, so out-of-order completion is harmless.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterator, Optional, Tuple

import numpy as np
from tqdm.auto import tqdm

from .config import DEFAULT_ROW_BLOCK, get_num_workers

logger = logging.getLogger(__name__)


def row_blocks(rows: int, block_size: int = DEFAULT_ROW_BLOCK) -> Iterator[Tuple[int, int]]:
    """Yield (row_start, row_end) pairs covering range(rows)."""
    for start in range(0, rows, block_size):
        yield start, min(start + block_size, rows)


def map_row_blocks(
    kernel: Callable,
    args: tuple,
    rows: int,
    num_workers: Optional[int] = None,
    block_size: int = DEFAULT_ROW_BLOCK,
    desc: str = "Processing rows",
    verbose: bool = False,
):
    """
    Run `kernel(*args, row_start, row_end)` over every row block in parallel.

    Args:
        kernel: Callable computing one block; must not mutate shared inputs
        args: Leading positional arguments shared by every call
        rows: Number of rows in the grid
        num_workers: Worker count (see config.get_num_workers)
        block_size: Rows per task
        desc: Progress bar label
        verbose: Show a tqdm progress bar

    Yields:
        tuple: (row_start, kernel result) in completion order

    Raises:
        Any exception raised by the kernel, unchanged
    """
    workers = get_num_workers(num_workers)
    blocks = list(row_blocks(rows, block_size))
    logger.debug(f"{desc}: {len(blocks)} blocks on {workers} workers")

    with ThreadPoolExecutor(max_workers=workers) as executor:
        future_map = {
            executor.submit(kernel, *args, start, end): (start, end) for start, end in blocks
        }
        with tqdm(total=rows, desc=desc, disable=not verbose) as pbar:
            for future in as_completed(future_map):
                start, end = future_map[future]
                yield start, future.result()
                pbar.update(end - start)


def collect_row_blocks(
    kernel: Callable,
    args: tuple,
    out: np.ndarray,
    num_workers: Optional[int] = None,
    block_size: int = DEFAULT_ROW_BLOCK,
    desc: str = "Processing rows",
    verbose: bool = False,
) -> np.ndarray:
    """Run a block kernel returning arrays and copy every block into `out`."""
    for start, block in map_row_blocks(
        kernel, args, out.shape[0], num_workers, block_size, desc, verbose
    ):
        out[start:start + block.shape[0]] = block
    return out
