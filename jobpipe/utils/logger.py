import logging
import sys
from pathlib import Path
from collections import deque
from logging.handlers import RotatingFileHandler
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class MemoryLogHandler(logging.Handler):
    """In-memory ring buffer of recent log lines, kept with their level so the API can filter."""

    def __init__(self, capacity: int = 1000):
        super().__init__()
        self.buffer: deque[tuple[int, str]] = deque(maxlen=capacity)

    def emit(self, record):
        self.buffer.append((record.levelno, self.format(record)))

    def get_logs(self, n: int = 50, min_level: Optional[str] = None) -> list[str]:
        threshold = logging.getLevelName(min_level.upper()) if min_level else logging.NOTSET
        if not isinstance(threshold, int):
            raise ValueError(f"Unknown log level: {min_level}")
        lines = [line for levelno, line in self.buffer if levelno >= threshold]
        return lines[-n:]

    def resize(self, capacity: int) -> None:
        self.buffer = deque(self.buffer, maxlen=capacity)


# Served by /api/logs
memory_handler = MemoryLogHandler(capacity=1000)


def _add_file_handler(logger: logging.Logger, log_file: str, max_size_mb: int = 10, backup_count: int = 5) -> None:
    # Bind-mounted log dirs are sometimes read-only
    try:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_size_mb * 1024 * 1024, backupCount=backup_count
        )
    except (PermissionError, OSError) as e:
        logger.warning(f"Could not create log file {log_file}: {e}. Using memory + stdout only.")
        return
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)


def setup_logger(name: str = "jobpipe") -> logging.Logger:
    """Attach the memory and stdout handlers once; files come from configure_logging."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    if logger.handlers:
        return logger

    memory_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(memory_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    logger.addHandler(console_handler)
    return logger


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    max_size_mb: int = 10,
    backup_count: int = 5,
    memory_capacity: Optional[int] = None,
) -> logging.Logger:
    """Apply the logging section of the settings to the shared logger."""
    logger.setLevel(level.upper())

    if memory_capacity:
        memory_handler.resize(memory_capacity)

    if log_file:
        for handler in list(logger.handlers):
            if isinstance(handler, RotatingFileHandler):
                logger.removeHandler(handler)
                handler.close()
        _add_file_handler(logger, log_file, max_size_mb, backup_count)

    return logger


logger = setup_logger()
