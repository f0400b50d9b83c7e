import os
import logging
from logging.handlers import TimedRotatingFileHandler

LOG_DIR = os.getenv("LOG_DIR", "logs")
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG").upper()
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() == "true"


def get_logger(name: str = "eventrelay"):
    logger = logging.getLogger(name)
    logger.setLevel(LOG_LEVEL)

    # If no handlers are attached, add console + timed rotating file handler
    if not logger.handlers:
        fmt = logging.Formatter(
            "[%(asctime)s] [%(levelname)s] %(name)s - %(message)s",
            "%Y-%m-%d %H:%M:%S"
        )

        console = logging.StreamHandler()
        console.setLevel(LOG_LEVEL)
        console.setFormatter(fmt)
        logger.addHandler(console)

        if LOG_TO_FILE:
            # Rotates at midnight, keeps a week of files
            os.makedirs(LOG_DIR, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                filename=os.path.join(LOG_DIR, f"{name}.log"),
                when="midnight",
                interval=1,
                backupCount=7,
                encoding="utf-8",
            )
            file_handler.suffix = "%Y-%m-%d"
            file_handler.setLevel(LOG_LEVEL)
            file_handler.setFormatter(fmt)
            logger.addHandler(file_handler)

        # Handlers are attached per named logger; don't double print via root
        logger.propagate = False

    return logger
