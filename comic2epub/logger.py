import logging
import os
from logging.handlers import RotatingFileHandler

# log directory: COMIC2EPUB_LOG_DIR, or 'logs' under the working directory
LOG_DIR = os.environ.get('COMIC2EPUB_LOG_DIR', os.path.join(os.getcwd(), 'logs'))
LOG_FILE = os.path.join(LOG_DIR, 'comic2epub.log')

def setup_logger(name='comic2epub', log_file=LOG_FILE, level=logging.INFO):
    """
    Configure the application logger.

    Args:
        name (str): logger name.
        log_file (str): path of the rotating log file, None for console only.
        level (int): logging level (logging.INFO, logging.DEBUG, ...).

    Returns:
        logging.Logger: the configured logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # handlers already attached, don't add them twice
    if logger.hasHandlers():
        return logger

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        try:
            os.makedirs(os.path.dirname(log_file), exist_ok=True)
            # 5MB per file, 5 backups
            file_handler = RotatingFileHandler(log_file, maxBytes=5*1024*1024, backupCount=5, encoding='utf-8')
        except OSError as e:
            logger.warning(f"Log file '{log_file}' unavailable, logging to console only: {e}")
        else:
            file_handler.setLevel(level)
            file_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s')
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

    return logger

def set_log_level(level):
    """Apply a level name ('DEBUG', 'INFO', ...) to app_logger and its handlers."""
    numeric = logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")
    app_logger.setLevel(numeric)
    for handler in app_logger.handlers:
        handler.setLevel(numeric)

# shared logger instance for the whole package
app_logger = setup_logger()
