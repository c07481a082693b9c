"""
Shared logger utility for the autonomous restock project.
Provides a consistent console format for demos and the supplier service.
"""

import logging

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_logger(name: str | None = None, level: int = logging.INFO) -> logging.Logger:
    """
    Returns a logger with the specified name, attaching a stream handler with the
    project format on first use. If no name is provided, returns the root logger,
    which is what entry points configure so module loggers inherit the handler.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
