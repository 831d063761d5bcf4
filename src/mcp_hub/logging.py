import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "LOG_LEVEL"
DEFAULT_LOG_LEVEL = "WARNING"

# Loggers of the libraries that carry the protocol traffic
PROTOCOL_LOGGERS = ("fastmcp", "mcp")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"mcp_hub.{name}")


def configure_logging(
    level: str | int | None = None,
    logger: logging.Logger | None = None,
) -> None:
    """Send mcp_hub logs to stderr through rich.

    ``level`` defaults to the ``LOG_LEVEL`` environment variable, then
    ``WARNING``. Server processes own stdout, so nothing is logged there.
    """
    if level is None:
        level = os.getenv(LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL)
    if isinstance(level, str):
        level = level.upper()

    if logger is None:
        logger = logging.getLogger("mcp_hub")

    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    logger.setLevel(level)
    for existing in logger.handlers[:]:
        logger.removeHandler(existing)
    logger.addHandler(handler)

    for name in PROTOCOL_LOGGERS:
        logging.getLogger(name).setLevel(level)
    # Every streamable HTTP request is logged by httpx at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if level == "DEBUG" else logging.WARNING)

    logger.debug(f"Logging configured at {logging.getLevelName(logger.level)}")
