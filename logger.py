# logger.py - rotating file loggers for the money paths (checkout, Stripe webhooks)
import os
import logging
from logging.handlers import RotatingFileHandler

LOG_DIR = os.environ.get("LOG_DIR", "logs")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

FILE_FORMAT = "%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]"
CONSOLE_FORMAT = "%(name)s - %(levelname)s - %(message)s"


def _rotating_handler(path, level):
    handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=10, encoding="utf-8")
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    handler.setLevel(level)
    return handler


def setup_logger(name, level=None):
    """Return the named logger writing to LOG_DIR/<name>.log; safe to call repeatedly."""
    level = level or getattr(logging, LOG_LEVEL, logging.INFO)
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    os.makedirs(LOG_DIR, exist_ok=True)
    logger.setLevel(level)
    logger.addHandler(_rotating_handler(os.path.join(LOG_DIR, f"{name}.log"), level))

    if os.environ.get("FLASK_ENV") != "production":
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        logger.addHandler(console)

    return logger


payments_logger = setup_logger("payments")
webhook_logger = setup_logger("webhooks")
