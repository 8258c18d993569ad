import logging
import os
import sys
from pathlib import Path
from typing import Optional

ROOT_LOGGER = 'threepoint'
LOG_FILE_NAME = 'threepoint.log'

FILE_FORMAT = '[%(asctime)s] %(levelname)-8s [%(name)s:%(funcName)s:%(lineno)d] %(message)s'
FILE_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
CONSOLE_FORMAT = '%(levelname)s: %(message)s'
CONSOLE_DEBUG_FORMAT = '%(levelname)-8s [%(name)s] %(message)s'


def _debug_enabled() -> bool:
    return os.getenv('TPE_DEBUG', '').lower() in ('1', 'true', 'yes')

def _console_level() -> int:
    """TPE_DEBUG wins over TPE_LOG_LEVEL; users only see warnings by default."""
    if _debug_enabled():
        return logging.DEBUG
    name = os.getenv('TPE_LOG_LEVEL', '').upper()
    if not name:
        return logging.WARNING
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING

def log_dir() -> Path:
    override = os.getenv('TPE_LOG_DIR', '')
    if override:
        return Path(override)
    return Path.home() / ".local" / "share" / "threepoint" / "logs"

def _file_handler() -> Optional[logging.Handler]:
    """Detailed handler catching everything; None when the log directory is not writable."""
    directory = log_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(directory / LOG_FILE_NAME, encoding='utf-8')
    except OSError:
        return None
    handler.setFormatter(logging.Formatter(FILE_FORMAT, FILE_DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler

def setup_logging():
    """Configure the threepoint logger tree from the environment."""
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG)  # handlers filter
    logger.handlers.clear()

    file_handler = _file_handler()
    if file_handler is not None:
        logger.addHandler(file_handler)

    # stderr, so exports and share tokens printed on stdout stay clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(logging.Formatter(CONSOLE_DEBUG_FORMAT if _debug_enabled() else CONSOLE_FORMAT))
    console_handler.setLevel(_console_level())
    logger.addHandler(console_handler)

    logger.propagate = False
    return logger

# Initialize logging when package is imported
setup_logging()

def get_logger(name: str = None):
    """Get a logger instance for a specific module."""
    if name:
        return logging.getLogger(f'{ROOT_LOGGER}.{name}')
    return logging.getLogger(ROOT_LOGGER)
