"""
Logging helpers shared by every module.
"""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_file_handlers: dict[str, logging.FileHandler] = {}


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """Get a module logger.

    Handlers live on the root logger so file and console output configured by
    the runner applies to every module.

    Args:
        name: Logger name, usually __name__
        level: Logging level for this logger

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    return logger


def setup_file_logging(
    filename: str = "pump_bundler.log", level: int = logging.INFO
) -> logging.FileHandler:
    """Attach a file handler to the root logger.

    Calling this twice with the same path reuses the existing handler.

    Args:
        filename: Path of the log file
        level: Minimum level written to the file

    Returns:
        The file handler attached to the root logger
    """
    path = str(Path(filename).resolve())
    if path in _file_handlers:
        return _file_handlers[path]

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    root.addHandler(handler)
    if root.level == logging.NOTSET or root.level > level:
        root.setLevel(level)

    _file_handlers[path] = handler
    return handler
