"""Logging configuration for webpair.

Package loggers and aiohttp's loggers share one set of handlers. Pairing
tokens travel in query strings and Authorization headers, so every record
passes through a filter that masks them before it is written.
"""

import logging
import re
from pathlib import Path

from webpair.config import Config

PACKAGE_LOGGER = "webpair"
# aiohttp.access, aiohttp.client, aiohttp.server, aiohttp.web, ...
AIOHTTP_LOGGER = "aiohttp"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_SECRET_PATTERNS = (
    re.compile(r"(token=)[^&\s\"']+"),
    re.compile(r"(Bearer\s+)\S+"),
    re.compile(r"(\"token\":\s*\")[^\"]*"),
)
REDACTED = "***"

_configured: list[logging.Logger] = []


def redact(text: str) -> str:
    """Mask token values in ``text``."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(rf"\g<1>{REDACTED}", text)
    return text


class RedactTokensFilter(logging.Filter):
    """Rewrites records so no pairing token reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = redact(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def _build_handlers(config: Config) -> list[logging.Handler]:
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = []

    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    handlers.append(logging.StreamHandler())

    redactor = RedactTokensFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(redactor)
    return handlers


def setup_logging(config: Config) -> logging.Logger:
    """Set up logging based on configuration.

    Only the first call has an effect; later calls return the package
    logger unchanged.

    Args:
        config: Configuration object with log settings.

    Returns:
        The ``webpair`` logger.
    """
    if _configured:
        return _configured[0]

    level = getattr(logging, config.log_level.upper(), logging.INFO)
    handlers = _build_handlers(config)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)

    # aiohttp is chatty at INFO (one access line per request)
    aiohttp_logger = logging.getLogger(AIOHTTP_LOGGER)
    aiohttp_logger.setLevel(level if level <= logging.DEBUG else logging.WARNING)

    for logger in (package_logger, aiohttp_logger):
        logger.handlers.clear()
        for handler in handlers:
            logger.addHandler(handler)
        logger.propagate = False
        _configured.append(logger)

    return package_logger


def reset_logging() -> None:
    """Reset logging state. Used for testing."""
    closed: set[int] = set()
    for logger in _configured:
        for handler in logger.handlers:
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))
        logger.handlers.clear()
        logger.setLevel(logging.NOTSET)
        logger.propagate = True
    _configured.clear()
