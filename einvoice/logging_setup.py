import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from einvoice.settings import get_settings


_LOG_FILE_NAME = "einvoice.log"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_MAX_LOG_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 5
_CONFIGURED_FLAG = "_einv_logging_configured"

# Per-request lines from these are noise next to the documents.* events.
_QUIET_LOGGERS = ("uvicorn.access", "httpx")


def _handlers(log_dir: Path, level: int) -> list[logging.Handler]:
    log_dir.mkdir(parents=True, exist_ok=True)
    handlers: list[logging.Handler] = [
        logging.StreamHandler(sys.stdout),
        RotatingFileHandler(
            log_dir / _LOG_FILE_NAME,
            maxBytes=_MAX_LOG_BYTES,
            backupCount=_BACKUP_COUNT,
            encoding="utf-8",
        ),
    ]
    formatter = logging.Formatter(_LOG_FORMAT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def setup_logging() -> None:
    """Configure the root logger once; later calls only adjust the level."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else logging.INFO
    root_logger = logging.getLogger()

    if not getattr(root_logger, _CONFIGURED_FLAG, False):
        root_logger.handlers.clear()
        for handler in _handlers(Path(settings.log_dir), level):
            root_logger.addHandler(handler)
        setattr(root_logger, _CONFIGURED_FLAG, True)
    else:
        for handler in root_logger.handlers:
            handler.setLevel(level)

    root_logger.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
