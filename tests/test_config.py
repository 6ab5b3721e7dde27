"""Tests for configuration, logging helpers and the worker pool."""

import logging
import time

import numpy as np
import pytest

from gridflow.config import NUM_WORKERS_ENV, get_num_workers
from gridflow.errors import InvalidInputError
from gridflow.parallel import collect_row_blocks, map_row_blocks, row_blocks
from gridflow.utils.helpers import format_elapsed_time, get_logger


class TestGetNumWorkers:
    """Worker-count resolution."""

    def test_explicit_value(self):
        assert get_num_workers(3) == 3

    def test_environment_value(self, monkeypatch):
        monkeypatch.setenv(NUM_WORKERS_ENV, "5")
        assert get_num_workers() == 5

    def test_defaults_to_cpu_count(self, monkeypatch):
        monkeypatch.delenv(NUM_WORKERS_ENV, raising=False)
        assert get_num_workers() >= 1

    def test_rejects_zero(self):
        with pytest.raises(InvalidInputError, match=">= 1"):
            get_num_workers(0)

    def test_rejects_non_integer_environment(self, monkeypatch):
        monkeypatch.setenv(NUM_WORKERS_ENV, "many")
        with pytest.raises(InvalidInputError, match=NUM_WORKERS_ENV):
            get_num_workers()


class TestRowBlocks:
    """Row-block splitting and the thread pool."""

    def test_row_blocks_cover_all_rows(self):
        assert list(row_blocks(10, 4)) == [(0, 4), (4, 8), (8, 10)]
        assert list(row_blocks(0, 4)) == []

    def test_collect_row_blocks_assembles_out_of_order_results(self):
        source = np.arange(40.0).reshape(20, 2)

        def double_rows(data, start, end):
            time.sleep(0.001 * (20 - start) / 20)
            return data[start:end] * 2.0

        out = np.empty_like(source)
        collect_row_blocks(double_rows, (source,), out, num_workers=4, block_size=3)
        np.testing.assert_array_equal(out, source * 2.0)

    def test_kernel_errors_propagate(self):
        def failing(start, end):
            raise RuntimeError("kernel failed")

        with pytest.raises(RuntimeError, match="kernel failed"):
            list(map_row_blocks(failing, (), 5, num_workers=2, block_size=2))


class TestHelpers:
    """Logging and timing helpers."""

    def test_get_logger_adds_single_handler(self):
        logger = get_logger("gridflow.test_helpers", "DEBUG")
        again = get_logger("gridflow.test_helpers", "INFO")
        assert logger is again
        assert len(again.handlers) == 1
        assert again.level == logging.INFO

    def test_format_elapsed_time(self):
        text = format_elapsed_time(time.perf_counter())
        assert text.endswith("ms")
