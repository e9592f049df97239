# mpgfit/logging_config.py

import logging
import sys
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Union[int, str] = logging.INFO, log_file: Optional[str] = None) -> logging.Logger:
    """
    Send the 'mpgfit' logger to stdout (and optionally a file).

    Safe to call more than once; previous handlers are replaced.
    """
    logger = logging.getLogger("mpgfit")
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.handlers.clear()

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S")
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
