# Standard library
import logging
from typing import Any

# Third-party
import structlog

# -----------------------------
# Structured logging
# -----------------------------

_CONFIGURED_LEVEL: str | None = None


def configure_logging(level: str = "INFO") -> None:
    """Configure structlog once for JSON-line output at the given level.

    Reconfiguring with the same level is a no-op.

    Args:
        level: Minimum log level name
    """
    global _CONFIGURED_LEVEL  # noqa: PLW0603
    level = level.upper()
    if _CONFIGURED_LEVEL == level:
        return
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level)
        ),
        cache_logger_on_first_use=False,
    )
    _CONFIGURED_LEVEL = level


def get_logger(name: str) -> Any:
    """Return a structured module logger.

    Args:
        name: Logger name, usually __name__

    Returns:
        structlog bound logger
    """
    if _CONFIGURED_LEVEL is None:
        configure_logging()
    return structlog.get_logger(name)
