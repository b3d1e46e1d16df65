# utils/logging_config.py
"""
Centralized logging configuration
"""
import logging
import sys
from pathlib import Path
from typing import Optional

NOISY_LOGGERS = ('urllib3', 'requests', 'streamlit', 'watchdog')


def setup_logging(log_level: str = 'INFO', log_file: Optional[str] = None):
    """
    Configure logging for the whole toolbox

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path, its directory is created if needed
    """
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    date_format = '%Y-%m-%d %H:%M:%S'

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt=date_format,
        handlers=handlers,
        force=True
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {log_level} level")
