import logging
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logger(name="transpane", level=logging.INFO):
    """Set up and return the package logger with a standard configuration"""
    logger = logging.getLogger(name)

    # Avoid duplicate handlers if setup_logger is called multiple times
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(LOG_FORMAT, datefmt='%H:%M:%S')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)

    return logger


def set_debug(enabled: bool):
    """Switch the package logger between DEBUG and INFO"""
    setup_logger(level=logging.DEBUG if enabled else logging.INFO)
