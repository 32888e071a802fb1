"""
Logging setup for the API process.
"""
import logging

from app.core.config import LOG_LEVEL

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str = LOG_LEVEL) -> None:
    """
    Configure the root logger once.

    Safe to call more than once (e.g. from the lifespan hook and from
    scripts); only the first call installs a handler.
    """
    global _configured

    if _configured:
        return

    logging.basicConfig(level=level, format=LOG_FORMAT)

    # SQLAlchemy echoes every statement at INFO; keep it quiet unless asked
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True
