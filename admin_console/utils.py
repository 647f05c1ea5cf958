import logging

from admin_console.core import config


_FORMAT = "%(levelname)s : %(asctime)s | %(name)s | %(message)s"


def get_logger(name: str = "admin_console") -> logging.Logger:
    """
    Get a logger writing to stderr with the console format.

    The handler is attached once per logger name, so repeated calls
    from module imports do not duplicate output.
    """
    logger = logging.getLogger(name)
    logger.setLevel(config.LOG_LEVEL)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)

    return logger
