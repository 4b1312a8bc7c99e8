"""
Logging Setup
One place to configure the root logger for the API process and RQ workers.
"""

import logging

from app.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = None):
    """Configure root logging once; later calls are no-ops."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    # httpx logs every request at INFO, which drowns the poll loop output
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def mask_token(token: str, keep: int = 8) -> str:
    """Shorten a device token or key for log lines."""
    if not token:
        return "<none>"
    return f"{token[:keep]}..." if len(token) > keep else token
