import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(config: dict = None):
    """
    Configure logging for the client with both file and console output.
    Creates rotating log files with a max size of 10MB, keeping 5 backup files.

    Args:
        config: Application configuration (uses 'data_dir', 'log_level', 'debug')
    """
    config = config or {}
    log_dir = os.path.join(config.get('data_dir', '.'), 'logs')
    if not os.path.exists(log_dir):
        os.makedirs(log_dir)

    level_name = 'DEBUG' if config.get('debug') else str(config.get('log_level', 'INFO')).upper()
    level = getattr(logging, level_name, logging.INFO)

    # Configure root logger
    logger = logging.getLogger()
    logger.setLevel(level)

    # Calling twice must not duplicate output
    for handler in list(logger.handlers):
        if getattr(handler, '_camper_handler', False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT)

    # File handler with rotation
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'camper.log'),
        maxBytes=10_000_000,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(level)
    file_handler._camper_handler = True

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    console_handler._camper_handler = True

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # aiohttp's access logging is noise at INFO
    logging.getLogger('aiohttp').setLevel(max(level, logging.WARNING))
    return logger
