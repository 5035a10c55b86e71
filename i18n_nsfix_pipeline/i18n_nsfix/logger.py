import logging
import sys

from .errors import ConfigError

LOGGER_NAME = "i18n-nsfix"
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

def setup_logger(level: str = "INFO") -> logging.Logger:
    """Attach the stdout handler once; later calls only change the level."""
    name = str(level).upper()
    if name not in LEVELS:
        raise ConfigError(f"Unknown log level: {level} (expected one of {', '.join(LEVELS)})")
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, name))
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        h.setFormatter(logging.Formatter("[%(asctime)s] [%(levelname)s] %(message)s", "%Y-%m-%d %H:%M:%S"))
        logger.addHandler(h)
    return logger
