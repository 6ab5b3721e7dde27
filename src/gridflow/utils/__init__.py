"""Shared helpers for gridflow."""

from .helpers import format_elapsed_time, get_logger, setup_logging

__all__ = ["format_elapsed_time", "get_logger", "setup_logging"]
