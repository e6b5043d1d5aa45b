import logging

from .config import Settings


def setup_logging(settings: Settings, debug: bool = False) -> None:
    """Configure application-wide logging based on settings.

    The format includes timestamp, log level, logger name, and message.
    ``debug`` overrides the configured level with DEBUG.
    """
    log_level_name = "DEBUG" if debug else settings.log_level.upper()
    level = getattr(logging, log_level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    # Request lines and SQL echo are too chatty even in debug runs.
    for logger_name in ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(logger_name).setLevel(max(level, logging.WARNING))
