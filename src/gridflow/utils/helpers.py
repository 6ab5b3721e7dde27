import logging
import sys
import time


def setup_logging(logger_name, level="INFO"):
    """Configure console logging for a logger"""

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Create logger
    logger = logging.getLogger(logger_name)
    logger.setLevel(level)

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger(logger_name, level="INFO"):
    existing_logger = logging.getLogger(logger_name)
    if not existing_logger.handlers:  # Check if handlers already exist
        return setup_logging(logger_name, level)
    existing_logger.setLevel(level)
    return existing_logger


def format_elapsed_time(start: float) -> str:
    """Format the wall time elapsed since a time.perf_counter() reading."""
    elapsed = time.perf_counter() - start
    minutes, seconds = divmod(elapsed, 60.0)
    if minutes >= 1:
        return f"{int(minutes)}min {seconds:.3f}s"
    if seconds >= 1:
        return f"{seconds:.3f}s"
    return f"{seconds * 1000.0:.1f}ms"
