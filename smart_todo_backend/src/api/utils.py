from __future__ import annotations

import logging
from datetime import datetime

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


# PUBLIC_INTERFACE
def get_now() -> datetime:
    """
    FastAPI dependency for the reference instant (naive local time).

    Date-relative logic takes the instant as a parameter; tests override this
    dependency to pin it.
    """
    return datetime.now()


# PUBLIC_INTERFACE
def configure_logging(level: str = "INFO") -> None:
    """
    Configure root logging once for the service.

    Args:
        level: Level name such as 'DEBUG' or 'INFO'. Unknown names fall back to INFO.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(level=numeric, format=_LOG_FORMAT)
