"""
Console logging for the backend.

Module loggers are children of the `compliance` logger, which owns the one
console handler. configure_logging() sets the shared level; create_app()
calls it with LOG_LEVEL from the settings.
"""
import logging
import os

ROOT_LOGGER = 'compliance'
LOG_FORMAT = '%(asctime)s [%(name)s] [%(levelname)s] %(message)s'
DATE_FORMAT = '%Y-%m-%dT%H:%M:%S'


def configure_logging(level=None) -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(handler)
    return root


class ComplianceLogger:
    """Per-module logger; records flow up to the shared `compliance` handler."""

    def __init__(self, name):
        root = logging.getLogger(ROOT_LOGGER)
        if not root.handlers:
            configure_logging()
        self.logger = root.getChild(name)

    @property
    def name(self):
        return self.logger.name

    def debug(self, message, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def info(self, message, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warn(self, message, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def exception(self, message, *args, **kwargs):
        self.logger.exception(message, *args, **kwargs)


def get_logger(name: str) -> ComplianceLogger:
    return ComplianceLogger(name)
