# ertha_exchange/server.py
"""Console entry point: validate configuration, prepare the schema, serve with uvicorn."""

import logging
import sys

import uvicorn

from ertha_exchange.config import get_settings
from ertha_exchange.database import init_db
from ertha_exchange.logging_config import configure_logging

logger = logging.getLogger(__name__)


def main() -> None:
    configure_logging()
    settings = get_settings()

    missing = settings.missing_critical()
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))
        sys.exit(1)
    if not settings.gateway_configured:
        logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not set; payments run in demo mode")
    if not settings.razorpay_webhook_secret:
        logger.warning("RAZORPAY_WEBHOOK_SECRET not set; webhooks will be rejected")
    if not settings.supabase_configured:
        logger.warning("Supabase credentials not set; connectivity check disabled")

    init_db()
    logger.info("Starting ErthaExchange API on %s:%s (%s)", settings.host, settings.port, settings.app_env)
    uvicorn.run(
        "ertha_exchange.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=not settings.is_production and settings.app_env == "development",
    )


if __name__ == "__main__":
    main()
