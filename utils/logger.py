"""
Logging configuration
"""
import logging
import os
from config.settings import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(name: str) -> logging.Logger:
    """
    Get logger instance with configured settings

    Every module calls this with __name__, so all pipeline output ends up
    on the console and in settings.LOG_FILE with the same format.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid duplicate handlers when a module is imported twice
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.LOG_FILE:
        log_dir = os.path.dirname(settings.LOG_FILE)
        os.makedirs(log_dir if log_dir else '.', exist_ok=True)
        file_handler = logging.FileHandler(settings.LOG_FILE, encoding='utf-8')
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Handlers are attached per module, so don't let records bubble up twice
    logger.propagate = False

    return logger


def log_banner(logger: logging.Logger, title: str, width: int = 60):
    """Log a section header framed by '=' lines"""
    logger.info("=" * width)
    logger.info(title)
    logger.info("=" * width)
