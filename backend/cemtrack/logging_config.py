"""Process-wide logging setup.

Modules log through ``logging.getLogger(__name__)``; this only installs the
root handler and level once at startup (API lifespan or CLI entry).
"""

import logging

from cemtrack.config import Settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("cemtrack").setLevel(level)

    # SQL echo is noisy; only surface it when debugging locally
    if not settings.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
