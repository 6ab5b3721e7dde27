"""Configuration module for gridflow.

Centralizes algorithm defaults and worker-pool settings.
"""
import math
import os

from .errors import InvalidInputError

# Flow accumulation defaults
DEFAULT_EXPONENT = 1.1
DEFAULT_THRESHOLD = math.inf
DEFAULT_OUT_TYPE = "sca"

# Sediment transport index defaults
DEFAULT_SCA_EXPONENT = 0.4
DEFAULT_SLOPE_EXPONENT = 1.3

# Terrain tool defaults
DEFAULT_AZIMUTH = 315.0  # degrees clockwise from north
DEFAULT_ALTITUDE = 30.0  # degrees above the horizon
DEFAULT_PERCENTILE_FILTER = 11
DEFAULT_SIG_DIGITS = 2
DEFAULT_RANGE_FILTER = 3
DEFAULT_SLOPE_THRESHOLD = 3.0  # degrees
DEFAULT_PROFILE_THRESHOLD = 0.1
DEFAULT_PLAN_THRESHOLD = 0.0
LANDFORM_NODATA = -128.0

# Raster defaults
DEFAULT_NODATA = -32768.0

# Worker pool
NUM_WORKERS_ENV = "GRIDFLOW_NUM_WORKERS"
DEFAULT_ROW_BLOCK = 64  # rows handed to a worker per task

# Default settings
DEFAULT_LOG_LEVEL = "INFO"


def get_num_workers(requested=None) -> int:
    """
    Resolve the size of the worker pool used by the parallel row phases.

    Args:
        requested: Explicit worker count. When None, the GRIDFLOW_NUM_WORKERS
            environment variable is used, then os.cpu_count().

    Returns:
        int: Number of workers (>= 1)

    Raises:
        InvalidInputError: If the requested or configured count is not a positive integer
    """
    if requested is None:
        env_value = os.environ.get(NUM_WORKERS_ENV)
        if env_value:
            try:
                requested = int(env_value)
            except ValueError as e:
                raise InvalidInputError(
                    f"{NUM_WORKERS_ENV} must be an integer, got '{env_value}'"
                ) from e
        else:
            return os.cpu_count() or 1

    if requested < 1:
        raise InvalidInputError(f"Number of workers must be >= 1, got {requested}")
    return int(requested)
