from __future__ import annotations

import logging

from colorlog import ColoredFormatter

TRACE_LEVEL = 5

LOG_FORMAT = "%(log_color)s%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_COLORS = {
    "TRACE": "cyan",
    "DEBUG": "blue",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


def _trace(self: logging.Logger, message: str, *args: object, **kwargs: object) -> None:
    if self.isEnabledFor(TRACE_LEVEL):
        self._log(TRACE_LEVEL, message, args, **kwargs)


def install_trace_level() -> None:
    """Register TRACE with the logging module and add ``Logger.trace``."""
    logging.addLevelName(TRACE_LEVEL, "TRACE")
    setattr(logging.Logger, "trace", _trace)


def configure_logging(level: int) -> None:
    install_trace_level()
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, log_colors=LOG_COLORS))
    logging.basicConfig(level=level, handlers=[handler], force=True)
    # paho logs every packet at DEBUG; keep it out of -v output
    if level > TRACE_LEVEL:
        logging.getLogger("paho").setLevel(max(level, logging.INFO))


def resolve_log_level(verbosity: int, fallback: str) -> int:
    if verbosity >= 2:
        return TRACE_LEVEL
    if verbosity == 1:
        return logging.DEBUG
    name = fallback.upper()
    if name == "TRACE":
        return TRACE_LEVEL
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO
