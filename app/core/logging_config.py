"""Logging setup for the service. Level comes from LOG_LEVEL."""

import logging

from app.core.config import LOG_LEVEL


def setup_logging(level: str | None = None) -> None:
    resolved = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request at INFO; keep it at WARNING unless debugging
    if resolved > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
