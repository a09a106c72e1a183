"""
Logger setup for the hostpulse process.
hostpulse 进程的日志配置。

Modules log through ``logging.getLogger(__name__)``; this module only
attaches the console handler to the package logger. Debug mode forces
DEBUG level so the per-cycle summary lines are shown.
"""

import logging
import sys
from typing import Optional

from hostpulse.runtime.config import DEFAULT_LOG_FORMAT
from hostpulse.version import MODULE_NAME

_HANDLER_NAME = f"{MODULE_NAME}-console"


def _get_log_level(level_name: str, default_level: int = logging.INFO) -> int:
    level = logging.getLevelName(str(level_name).upper())
    if isinstance(level, int):
        return level
    logging.getLogger(MODULE_NAME).warning(
        "invalid log level %r, using %s", level_name, logging.getLevelName(default_level),
    )
    return default_level


def setup_logging(
    level: str = "INFO",
    debug: bool = False,
    fmt: str = DEFAULT_LOG_FORMAT,
    stream: Optional[object] = None,
) -> logging.Logger:
    """
    Configure the package logger. Calling it again replaces the handler.
    配置包日志器。再次调用会替换处理器。

    Returns / 返回
    -------
    logging.Logger
        The ``hostpulse`` logger.
    """
    root = logging.getLogger(MODULE_NAME)
    root.setLevel(logging.DEBUG if debug else _get_log_level(level))

    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)
            handler.close()

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)
    return root
