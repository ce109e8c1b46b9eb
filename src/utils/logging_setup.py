"""
Process-wide logging configuration.

Installs a console handler and, optionally, a UTF-8 file handler on the root
logger so every module's ``logging.getLogger(__name__)`` logger inherits them.
"""

import logging
import os
from typing import Optional, Union

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[str] = "logs/enrichment.log",
    format_str: Optional[str] = None
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level or level name
        log_file: File to log to as well as the console; None disables it
        format_str: Custom format string for log messages

    Returns:
        logging.Logger: The configured root logger
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logger = logging.getLogger()
    logger.setLevel(level)

    # Clear any existing handlers to avoid duplication
    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(format_str or LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            directory = os.path.dirname(log_file)
            if directory:
                os.makedirs(directory, exist_ok=True)

            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Failed to create log file handler: {str(e)}")

    return logger
