"""
Logging configuration for the panel analytics engine
Provides console/file logging and DataFrame debugging helpers for the
Polars/Pandas aggregation paths
"""

import logging
import sys
from pathlib import Path

import httpx
import numpy as np
import pandas as pd
import polars as pl


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for better readability"""

    # Color codes
    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",  # Reset
    }

    def format(self, record):
        # Color a copy so other handlers still see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        level_color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        colored.levelname = f"{level_color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(colored)


def setup_logging(
    level: str = "INFO",
    enable_file_logging: bool = False,
    log_file_path: str = "panel_analytics.log",
) -> logging.Logger:
    """
    Setup logging for the engine

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        enable_file_logging: Whether to log to file
        log_file_path: Path to log file

    Returns:
        The configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(numeric_level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(
        ColoredFormatter(
            "%(asctime)s | %(levelname)s | %(name)s:%(lineno)d | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    logger.addHandler(console_handler)

    if enable_file_logging:
        log_path = Path(log_file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)-20s:%(lineno)-4d | %(funcName)-20s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)
        logger.info(f"📝 Log file: {log_path.absolute()}")

    logger.info("🖥️  System Information:")
    logger.info(f"   Python: {sys.version.split()[0]}")
    logger.info(f"   Pandas: {pd.__version__}")
    logger.info(f"   Polars: {pl.__version__}")
    logger.info(f"   NumPy: {np.__version__}")
    logger.info(f"   httpx: {httpx.__version__}")

    return logger


def log_dataframe_info(df, name: str = "DataFrame", logger=None):
    """
    Log shape and columns of a DataFrame for debugging

    Args:
        df: DataFrame (Polars or Pandas)
        name: Name to identify the DataFrame
        logger: Logger instance (if None, uses this module's logger)
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    if not logger.isEnabledFor(logging.DEBUG):
        return

    logger.debug(f"📊 {name}: {type(df).__name__} shape={df.shape}")
    logger.debug(f"   Columns: {list(df.columns)}")

    if isinstance(df, pl.DataFrame):
        memory_mb = df.estimated_size() / 1024 / 1024
    else:
        memory_mb = df.memory_usage(deep=True).sum() / 1024 / 1024
    logger.debug(f"   Memory: {memory_mb:.2f} MB")


# Quick setup function for debugging sessions
def quick_debug_setup() -> logging.Logger:
    """DEBUG level with file logging"""
    return setup_logging(
        level="DEBUG",
        enable_file_logging=True,
        log_file_path="debug_panel_analytics.log",
    )
