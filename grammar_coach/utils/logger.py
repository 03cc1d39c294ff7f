"""Logging configuration for the application."""

import logging
import os
import sys
from typing import List, Optional

from grammar_coach import config

_logger: Optional[logging.Logger] = None

def _console_handler(formatter: logging.Formatter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(config.LOG_LEVEL)
    handler.setFormatter(formatter)
    return handler

def _file_handler(path: str, formatter: logging.Formatter) -> logging.Handler:
    log_dir = os.path.dirname(path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setLevel(config.LOG_LEVEL)
    handler.setFormatter(formatter)
    return handler

def setup_logger() -> logging.Logger:
    """Sets up and returns the application logger.

    Logs go to stdout and, when `config.LOG_FILE` is non-empty, are also
    appended to that file. A file that cannot be opened is reported and
    skipped. Safe to call more than once.
    """
    global _logger
    if _logger is not None:
        return _logger

    logger = logging.getLogger(config.LOGGER_NAME)
    logger.setLevel(config.LOG_LEVEL)

    if not logger.handlers:
        formatter = logging.Formatter(config.LOG_FORMAT)
        handlers: List[logging.Handler] = [_console_handler(formatter)]
        file_error: Optional[OSError] = None
        if config.LOG_FILE:
            try:
                handlers.append(_file_handler(config.LOG_FILE, formatter))
            except OSError as e:
                file_error = e
        for handler in handlers:
            logger.addHandler(handler)
        if file_error is not None:
            logger.error(f"File logging disabled, cannot open {config.LOG_FILE}: {file_error}")

    _logger = logger
    if config.DEBUG:
        logger.debug("Logger initialized in DEBUG mode.")
    return logger

def get_logger() -> logging.Logger:
    """Returns the application logger, setting it up on first use."""
    return _logger if _logger is not None else setup_logger()
