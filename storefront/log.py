import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler

from .config import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(settings: Settings) -> logging.Logger:
    """Configures the ``storefront`` logger: console, plus rotating files when LOG_DIR is set."""
    log = logging.getLogger("storefront")
    log.setLevel(logging.DEBUG if settings.is_development else logging.INFO)
    if log.handlers:
        return log

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    log.addHandler(console)

    if settings.log_dir:
        os.makedirs(settings.log_dir, exist_ok=True)
        app_file = TimedRotatingFileHandler(
            os.path.join(settings.log_dir, "application.log"), when="midnight", backupCount=14
        )
        app_file.setLevel(logging.INFO)
        app_file.setFormatter(formatter)
        log.addHandler(app_file)

        error_file = TimedRotatingFileHandler(
            os.path.join(settings.log_dir, "errors.log"), when="midnight", backupCount=30
        )
        error_file.setLevel(logging.ERROR)
        error_file.setFormatter(formatter)
        log.addHandler(error_file)

    log.debug("Logging configured (env=%s)", settings.app_env)
    return log
