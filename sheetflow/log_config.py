"""Logging setup for the SheetFlow service."""

import logging.config

import settings


def build_logging_config(level=None, log_file=None):
    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else settings.LOG_FILE

    handlers = {
        "console": {
            "level": level,
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    }
    if log_file:
        handlers["file"] = {
            "level": "DEBUG",
            "class": "logging.FileHandler",
            "filename": log_file,
            "formatter": "verbose",
        }

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "verbose": {
                "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
                "style": "{",
            },
            "simple": {
                "format": "{levelname} {name}: {message}",
                "style": "{",
            },
        },
        "handlers": handlers,
        "root": {
            "handlers": list(handlers),
            "level": level,
        },
        "loggers": {
            "uvicorn.access": {
                "handlers": list(handlers),
                "level": "WARNING",
                "propagate": False,
            },
        },
    }


def setup_logging(level=None, log_file=None):
    """Configure root logging once per process."""
    logging.config.dictConfig(build_logging_config(level, log_file))
