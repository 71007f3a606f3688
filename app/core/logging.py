"""Logging configuration."""
import logging
import sys
from typing import Optional

from app.core.config import settings

# Chatty libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "uvicorn.access")


def setup_logging(level: Optional[str] = None) -> None:
    """Log to stdout at ``LOG_LEVEL`` with webhook and call-control tags in messages."""
    level_name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
