"""
Centralized logging module for v2stat
Implements rotating file handler with 10MB size limit plus console output
"""
import logging
import sys
from logging.handlers import RotatingFileHandler

import config

LOGGER_NAME = 'v2stat'

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'warn': logging.WARNING,
    'error': logging.ERROR,
    'critical': logging.CRITICAL,
    'fatal': logging.CRITICAL,
}

LOG_FORMAT = '[%(asctime)s] %(levelname)s [%(module)s.%(funcName)s:%(lineno)d] %(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Global logger instance
_logger = None


def parse_level(level_name):
    """
    Convert a level name (e.g. "info") into a logging level.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LOG_LEVELS[str(level_name).strip().lower()]
    except KeyError:
        raise ValueError(f"Invalid log level: {level_name}") from None


def get_logger():
    """
    Get or create the application logger.

    Logger behavior:
    - Rotates log files when they exceed 10MB
    - Keeps up to 5 backup files (50MB total max)
    - Mirrors every record to stderr
    - Initial level comes from the log_level setting

    Returns:
        logging.Logger: Configured logger instance
    """
    global _logger

    if _logger is not None:
        return _logger

    _logger = logging.getLogger(LOGGER_NAME)
    _logger.handlers.clear()

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    try:
        # maxBytes=10MB, backupCount=5 (keeps 5 old files, 50MB total max)
        file_handler = RotatingFileHandler(
            config.LOG_FILE,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        _logger.addHandler(file_handler)
    except OSError as e:
        sys.stderr.write(f"Cannot open log file {config.LOG_FILE}: {e}\n")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    _logger.addHandler(console_handler)

    # Prevent propagation to root logger
    _logger.propagate = False

    try:
        _logger.setLevel(parse_level(config.load_settings().get('log_level', 'info')))
    except ValueError:
        _logger.setLevel(logging.INFO)

    return _logger


def set_log_level(level_name):
    """
    Change the application log level.

    Args:
        level_name (str): One of debug, info, warning, error, critical

    Raises:
        ValueError: If the name is not a known level
    """
    level = parse_level(level_name)
    get_logger().setLevel(level)
    return level


def debug(message, *args, **kwargs):
    """
    Log a debug message.

    Example:
        debug("Recording %d counters", len(counters))
    """
    get_logger().debug(message, *args, **kwargs)


def info(message, *args, **kwargs):
    """Log an info message."""
    get_logger().info(message, *args, **kwargs)


def warning(message, *args, **kwargs):
    """Log a warning message."""
    get_logger().warning(message, *args, **kwargs)


def error(message, *args, **kwargs):
    """Log an error message."""
    get_logger().error(message, *args, **kwargs)


def exception(message, *args, **kwargs):
    """
    Log an exception with traceback.
    Call this from an except block to log the exception with full traceback.

    Example:
        try:
            storage.record_samples(now, counters)
        except StorageError as e:
            exception("Failed to record stats: %s", str(e))
    """
    get_logger().exception(message, *args, **kwargs)


def safe_error_response(error_obj, default_message="An error occurred"):
    """
    Create a safe error message for client responses.

    Logs the full error details server-side but returns a generic message
    to the HTTP client.
    """
    error(f"Error details (not sent to client): {str(error_obj)}")
    return default_message
