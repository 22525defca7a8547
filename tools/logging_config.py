"""
Console logging setup shared by the command-line tools.
"""

import logging
import sys

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

LOG_LEVELS = {
    'DEBUG': logging.DEBUG,
    'INFO': logging.INFO,
    'WARNING': logging.WARNING,
    'ERROR': logging.ERROR,
    'CRITICAL': logging.CRITICAL,
}


def setup_logging(level: str = 'INFO') -> None:
    """Send log records to stdout at `level`; unknown levels fall back to INFO."""
    log_level = LOG_LEVELS.get(str(level).upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger.setLevel(log_level)
    root_logger.addHandler(console_handler)

    # Per-request chatter from the HTTP stack
    logging.getLogger('urllib3').setLevel(max(log_level, logging.WARNING))
