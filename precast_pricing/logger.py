# precast_pricing/logger.py
import logging
from logging.handlers import RotatingFileHandler
import os
from typing import List

from precast_pricing.config import load_settings

LOG_FILE = os.getenv("LOG_FILE", "pricing.log")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def _handlers() -> List[logging.Handler]:
    # 日志目录来自 Settings（.env / LOG_DIR）
    log_dir = load_settings().log_dir
    os.makedirs(log_dir, exist_ok=True)
    rotating = RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE),
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    return [logging.StreamHandler(), rotating]


def get_logger(name: str) -> logging.Logger:
    '''Console + rotating file logger; handlers are attached once per name.'''
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL.upper())
    formatter = logging.Formatter(LOG_FORMAT)
    for handler in _handlers():
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger
