"""Process-wide logging setup."""

import logging

from fee_ledger.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Install the root handler on first call; later calls only change the level."""
    level = (level or settings.log_level).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)
