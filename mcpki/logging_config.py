"""
JSON logging for the gateway.

The gateway owns exactly one root handler, identified by HANDLER_NAME. Calling
setup_logging again replaces that handler; handlers installed by anyone else
stay in place.
"""

import logging
import os
import sys
from pathlib import Path

from pythonjsonlogger import jsonlogger

HANDLER_NAME = "mcpki"
LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
DEFAULT_LOG_DIR = Path(__file__).parent.parent / "logs"
STDIO_LOG_FILE = "mcpki-stdio.log"

# These log full request URLs, i.e. the backend address
TRANSPORT_LOGGERS = ("httpx", "httpcore")


def log_level_from_environment() -> int:
    """Returns the level named by LOG_LEVEL, INFO if unset or unknown."""
    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def quiet_transport_loggers(level: int) -> None:
    for logger_name in TRANSPORT_LOGGERS:
        logging.getLogger(logger_name).setLevel(max(level, logging.WARNING))


def _create_handler(stdio_mode: bool) -> logging.Handler:
    if not stdio_mode:
        return logging.StreamHandler(sys.stdout)
    # stdout is the MCP channel in stdio mode
    log_dir = Path(os.environ.get("MCPKI_LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(log_dir / STDIO_LOG_FILE, mode="a")


def setup_logging(stdio_mode: bool = False) -> logging.Handler:
    """
    Configures the root logger to output structured JSON logs.

    Args:
        stdio_mode: If True, logs go to logs/mcpki-stdio.log (or MCPKI_LOG_DIR)
                    instead of stdout.

    Returns:
        The installed handler.
    """
    level = log_level_from_environment()
    root = logging.getLogger()
    root.setLevel(level)

    for existing in list(root.handlers):
        if existing.get_name() == HANDLER_NAME:
            root.removeHandler(existing)
            existing.close()

    handler = _create_handler(stdio_mode)
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    root.addHandler(handler)

    quiet_transport_loggers(level)
    return handler
