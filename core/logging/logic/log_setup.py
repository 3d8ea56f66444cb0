"""
core/logging/logic/log_setup.py
===============================

Root logging configuration. Modules only call ``logging.getLogger(__name__)``;
handlers and levels are set here once at process start.
"""

from __future__ import annotations

import logging
from typing import Optional

from core.config.config_service import LoggingConfig

_HANDLER_NAME = "theses-console"


def configure_logging(config: Optional[LoggingConfig] = None) -> logging.Logger:
    """Install (or refresh) the console handler on the root logger."""
    config = config or LoggingConfig()
    level = logging.getLevelName(str(config.level).upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    handler = next((h for h in root.handlers if h.get_name() == _HANDLER_NAME), None)
    if handler is None:
        handler = logging.StreamHandler()
        handler.set_name(_HANDLER_NAME)
        root.addHandler(handler)
    handler.setFormatter(logging.Formatter(config.format))
    handler.setLevel(level)
    return root
