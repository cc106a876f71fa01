"""Logging setup driven by the ``logging`` section of the app config."""

import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from ..config import LoggingConfig

# aiomqtt logs through "mqtt" by default and hands that logger to paho
LIBRARY_LOGGERS = ("asyncio", "aiomqtt", "mqtt", "paho")

# Marks handlers installed here so a second call only replaces its own
_HANDLER_MARK = "_mqttsession_handler"


def setup_logging(
    config: Optional[LoggingConfig] = None,
    stream: Optional[TextIO] = None,
) -> List[logging.Handler]:
    """Configure the root logger for mqtt-session.

    Handlers from an earlier call are replaced; handlers installed by
    anybody else are left alone.

    Args:
        config: Logging settings (defaults when None)
        stream: Console stream (default: stdout)

    Returns:
        The handlers that were installed, console handler first
    """
    if config is None:
        config = LoggingConfig()

    level = getattr(logging, config.level)
    formatter = logging.Formatter(config.format)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        if getattr(handler, _HANDLER_MARK, False):
            root_logger.removeHandler(handler)
            handler.close()

    handlers: List[logging.Handler] = [
        logging.StreamHandler(stream if stream is not None else sys.stdout)
    ]

    if config.file:
        log_file = Path(config.file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_MARK, True)
        root_logger.addHandler(handler)

    # MQTT keepalive and packet chatter is only interesting when it is a problem
    library_level = max(level, logging.WARNING)
    for name in LIBRARY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    logging.getLogger(__name__).info(
        f"Logging configured: level={config.level}"
        f"{f', file={config.file}' if config.file else ''}"
    )
    return handlers
