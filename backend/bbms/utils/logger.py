import logging
import sys
from pathlib import Path

from bbms.core.config import Settings, settings as default_settings


def setup_logging(settings: Settings = default_settings) -> logging.Logger:
    """Setup application logging"""

    logger = logging.getLogger("bbms")
    logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    # create_app may run more than once per process (tests, reloads)
    if logger.handlers:
        return logger

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(settings.log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
