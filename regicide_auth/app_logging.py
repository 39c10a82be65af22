"""JSON log output for the session functions and the command line."""

import logging
from typing import Union

from pythonjsonlogger import jsonlogger

FORMAT = '%(asctime)s %(levelname)s %(name)s %(message)s'


def setup_logger(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Send JSON log records to stderr; later calls only change the level."""
    logger = logging.getLogger()
    if not any(isinstance(handler.formatter, jsonlogger.JsonFormatter)
               for handler in logger.handlers):
        handler = logging.StreamHandler()
        formatter = jsonlogger.JsonFormatter(
            FORMAT,
            rename_fields={'levelname': 'level', 'asctime': 'timestamp'}
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger
