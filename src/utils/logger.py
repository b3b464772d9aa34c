"""Logging configuration."""
import logging
import sys
from pathlib import Path
from typing import Optional
from src.config.settings import settings

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOGGER_NAME = "social-publisher"


def setup_logger(
    name: str = DEFAULT_LOGGER_NAME,
    level: int = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure a logger writing to stdout and a log file.

    level defaults to settings.LOG_LEVEL, log_file to settings.LOG_FILE.
    The file always records INFO and above. Calling this again for an
    already configured name only updates the level.
    """
    logger_instance = logging.getLogger(name)

    if level is None:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logger_instance.setLevel(level)

    if logger_instance.handlers:
        return logger_instance

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger_instance.addHandler(console_handler)

    file_path = Path(log_file or settings.LOG_FILE)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(file_path)
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    logger_instance.addHandler(file_handler)

    # Worker and API processes share stdout; keep lines out of the root logger
    logger_instance.propagate = False

    return logger_instance


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """Return the named logger, configuring it on first use."""
    logger_instance = logging.getLogger(name)
    if not logger_instance.handlers:
        return setup_logger(name)
    return logger_instance


def format_fields(**fields) -> str:
    """
    Render key=value pairs for structured log lines.

    None values are skipped so callers can pass optional context freely:
        format_fields(post=post_id, job=job_id, attempt=2)  # "post=.. job=.. attempt=2"
    """
    return " ".join(f"{key}={value}" for key, value in fields.items() if value is not None)


logger = setup_logger()
