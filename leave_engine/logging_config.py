"""Process-wide logging setup shared by the API and the job runner."""

import logging

from leave_engine.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once; *level* overrides ``settings.LOG_LEVEL``."""
    name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )
    # SQL echo is controlled by the engine, keep the driver quiet otherwise
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
