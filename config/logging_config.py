"""Logging configuration for Network Scanner.

Every module logs through a child of the ``netscan`` logger. A scan runs
on several threads (probe worker, resolver pool, timeout task, event bus
worker), so each line carries the thread name.

Usage:
    from config.logging_config import setup_logging, get_logger

    setup_logging(data_dir=Path.home() / ".network-scanner", debug=True)

    logger = get_logger(__name__)
    logger.info("Scan started")
"""
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from config.constants import STORAGE

ROOT_LOGGER_NAME = 'netscan'
LOG_FORMAT = '%(asctime)s [%(threadName)s] %(levelname)s %(name)s: %(message)s'
DATE_FORMAT = '%H:%M:%S'

# zeroconf logs every malformed packet on the segment at INFO
NOISY_LIBRARIES = ('zeroconf',)

_loggers: dict = {}
_initialized: bool = False


class LevelColorFormatter(logging.Formatter):
    """Colours the level name when stderr is a terminal."""

    LEVEL_COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[1;31m',
    }
    RESET = '\033[0m'

    def __init__(self):
        super().__init__(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)
        self._tty = sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if not (self._tty and color):
            return super().format(record)
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _file_handler(data_dir: Path) -> logging.Handler:
    data_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        data_dir / STORAGE.LOG_FILE,
        maxBytes=STORAGE.LOG_MAX_BYTES,
        backupCount=STORAGE.LOG_BACKUP_COUNT,
        encoding='utf-8',
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d ' + DATE_FORMAT))
    return handler


def _quiet_libraries(debug: bool) -> None:
    for name in NOISY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.DEBUG if debug else logging.WARNING)


def setup_logging(
    data_dir: Optional[Path] = None,
    debug: bool = False,
    console_output: bool = True,
    log_to_file: bool = True
) -> logging.Logger:
    """Configure the ``netscan`` logger.

    Safe to call again: existing handlers are closed and replaced.

    Args:
        data_dir: Directory for the rotating log file (~/.network-scanner/).
        debug: Log at DEBUG and show DEBUG on the console.
        console_output: Log warnings (everything with ``debug``) to stderr.
        log_to_file: Keep a rotating log file in ``data_dir``.
    """
    global _initialized

    if data_dir is None:
        data_dir = Path.home() / STORAGE.DATA_DIR_NAME

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG if debug else logging.INFO)
    root_logger.propagate = False

    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    handlers: List[logging.Handler] = []
    if log_to_file:
        handlers.append(_file_handler(data_dir))
    if console_output:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(logging.DEBUG if debug else logging.WARNING)
        console.setFormatter(LevelColorFormatter())
        handlers.append(console)
    for handler in handlers:
        root_logger.addHandler(handler)

    _quiet_libraries(debug)
    _initialized = True
    root_logger.debug(f"Logging ready (file={log_to_file}, console={console_output})")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Child of ``netscan`` named after the last two parts of ``name``.

    ``discovery.prober`` becomes ``netscan.discovery.prober``.
    """
    short_name = '.'.join(name.split('.')[-2:])
    logger = _loggers.get(short_name)
    if logger is None:
        if not _initialized:
            logging.basicConfig(level=logging.INFO)
        logger = _loggers[short_name] = logging.getLogger(f'{ROOT_LOGGER_NAME}.{short_name}')
    return logger


def log_subprocess_call(
    logger: logging.Logger,
    command: list,
    returncode: int,
    duration_ms: float,
    success: bool
) -> None:
    """One line per ``arp``/``ping`` run: argv head, exit code and time."""
    shown = ' '.join(command[:3]) + (' ...' if len(command) > 3 else '')
    logger.log(
        logging.DEBUG if success else logging.WARNING,
        f"ran {shown!r} rc={returncode} in {duration_ms:.1f}ms",
    )


class LogContext:
    """Times a block and logs its start and outcome.

    Example:
        >>> with LogContext(logger, "Probe of 10.0.0.0/24"):
        ...     prober.scan("10.0.0")
    """

    def __init__(self, logger: logging.Logger, operation: str, level: int = logging.DEBUG):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[float] = None
        self.duration_ms: Optional[float] = None

    def __enter__(self) -> 'LogContext':
        self.start_time = time.monotonic()
        self.logger.log(self.level, f"{self.operation}: started")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.duration_ms = (time.monotonic() - self.start_time) * 1000
        if exc_type is not None:
            self.logger.error(f"{self.operation}: failed after {self.duration_ms:.0f}ms: {exc_val}")
        else:
            self.logger.log(self.level, f"{self.operation}: done in {self.duration_ms:.0f}ms")
        return False
