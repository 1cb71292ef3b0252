# ertha_exchange/logging_config.py
import logging

from ertha_exchange.config import get_settings

_LOGGING_CONFIGURED = False


def configure_logging() -> None:
    """Configure process-wide logging from LOG_LEVEL (idempotent)."""
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    level_name = get_settings().log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    # uvicorn access lines duplicate the request middleware's own line
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _LOGGING_CONFIGURED = True
