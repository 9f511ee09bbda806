"""
Logging utility for the exporter.
Logs registration, refresh timings and per-file failures to the console
and, optionally, to a file.
"""
import logging
from pathlib import Path

LOGGER_NAME = "bigquery_exporter"


def setup_logger(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """
    Set up the package logger. Every module logger
    (``logging.getLogger(__name__)``) propagates to it.

    Args:
        level: Logging level name (e.g., 'INFO', 'DEBUG')
        log_file: Optional path of a file to also write log lines to

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level.upper())

    # Remove existing handlers to avoid duplicates
    logger.handlers = []

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        # Create the log directory if it doesn't exist
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger() -> logging.Logger:
    """
    Get the package logger, or create a console-only one if it hasn't been
    set up yet.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return setup_logger()
    return logger
