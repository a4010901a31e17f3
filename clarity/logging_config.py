"""
Logging Configuration
=====================

Single place that configures the package logger so every module can call
``get_logger(__name__)`` without touching handlers.
"""

import logging

import config

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_ROOT_NAME = "clarity"
_configured = False


def setup_logging(level=None):
    """Attach one stream handler to the package logger (idempotent)."""
    global _configured

    level = level or getattr(config, "LOG_LEVEL", "INFO")
    root = logging.getLogger(_ROOT_NAME)
    root.setLevel(level)

    if not _configured:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)
        root.propagate = False
        _configured = True

    return root


def get_logger(name):
    if not name.startswith(_ROOT_NAME):
        name = f"{_ROOT_NAME}.{name}"
    return logging.getLogger(name)
