import logging
from pathlib import Path

from wishdraw.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Chatty at INFO; their warnings still get through.
_QUIET_LOGGERS = ("aiosqlite", "sqlalchemy.engine", "httpx", "redis")


def _file_handler(root: logging.Logger, path: Path) -> logging.Handler | None:
    path.parent.mkdir(parents=True, exist_ok=True)
    target = str(path.resolve())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == target:
            return None
    return logging.FileHandler(path, encoding="utf-8")


def configure_logging() -> logging.Logger:
    """Set up root handlers once and return the ``wishdraw`` logger.

    Safe to call repeatedly; handlers are only added when missing.
    """
    level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()

    new_handlers: list[logging.Handler] = []
    if not root.handlers:
        new_handlers.append(logging.StreamHandler())
    if settings.log_file:
        handler = _file_handler(root, Path(settings.log_file))
        if handler is not None:
            new_handlers.append(handler)

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in new_handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("wishdraw")
    logger.setLevel(level)
    return logger
