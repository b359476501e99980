from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler

from vaultlog.config import SETTINGS, Settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_FILE = "vaultlog.log"
# uvicorn configures these itself unless run with log_config=None
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


def setup_logging(settings: Settings = SETTINGS) -> None:
    """Send application and server logs to a rotating file and the console."""
    log_dir = settings.log_path
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    file_handler = RotatingFileHandler(log_dir / LOG_FILE, maxBytes=2_000_000, backupCount=3)
    console_handler = logging.StreamHandler()
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)

    logging.basicConfig(level=settings.log_level, handlers=[file_handler, console_handler])
    for name in SERVER_LOGGERS:
        server_logger = logging.getLogger(name)
        server_logger.handlers.clear()
        server_logger.propagate = True
    logging.getLogger(__name__).debug("Logging to %s", log_dir / LOG_FILE)
