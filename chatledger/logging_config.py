# chatledger/logging_config.py
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """
    Attach handlers to the "chatledger" logger. Level comes from the argument,
    then CHATLEDGER_LOG_LEVEL, then WARNING. Safe to call more than once.
    """
    level = level or os.environ.get("CHATLEDGER_LOG_LEVEL", "WARNING")
    logger = logging.getLogger("chatledger")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in list(logger.handlers):
        if getattr(handler, "_chatledger", False):
            logger.removeHandler(handler)
            handler.close()

    # stderr keeps log lines out of command output
    console_handler = RichHandler(console=Console(stderr=True), show_path=False)
    console_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    console_handler._chatledger = True
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=10 * 1024 * 1024, backupCount=5)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        file_handler._chatledger = True
        logger.addHandler(file_handler)

    return logger
