"""dsar - distributed sar: rate statistics from Prometheus metrics endpoints."""

import asyncio
import logging
import os
import sys

from pydantic import ValidationError

from dsar import __version__
from dsar.config import CollectorSettings
from dsar.exceptions import ClassificationError
from dsar.services.collector import CollectorService
from dsar.services.metrics import start_exporter

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # httpx logs every request at info
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


def main() -> int:
    """Run the collector until interrupted.

    Returns:
        Process exit status: 0 on interrupt, 1 on configuration or fatal
        classification errors
    """
    configure_logging()
    logger.info(f"Starting dsar v{__version__}")

    try:
        settings = CollectorSettings.from_env()
    except ValidationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if settings.metrics_port is not None:
        start_exporter(settings.metrics_port)
        logger.info(f"Serving collector metrics on port {settings.metrics_port}")

    collector = CollectorService(settings)
    try:
        asyncio.run(collector.run())
    except ClassificationError as e:
        logger.error(f"Stopped on fatal classification error: {e}")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
    return 0


if __name__ == "__main__":
    sys.exit(main())
