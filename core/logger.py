#!/usr/bin/env python3
"""
Service logger setup

Configures the root logger once per process from LoggingConfig and returns
the named service logger. Modules keep using logging.getLogger(__name__).
"""

import logging
import sys
from typing import Optional

from .config import LoggingConfig

_configured = False


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure process logging and return the logger for `service_name`"""
    global _configured

    logging_config = LoggingConfig.from_env()
    resolved_level = getattr(logging, (level or logging_config.log_level).upper(), logging.INFO)

    if not _configured:
        formatter = logging.Formatter(logging_config.log_format)
        root = logging.getLogger()
        root.setLevel(resolved_level)

        if logging_config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        target_file = log_file or logging_config.log_file
        if target_file:
            file_handler = logging.FileHandler(target_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        # Quiet chatty client libraries
        logging.getLogger("asyncpg").setLevel(logging.WARNING)
        logging.getLogger("nats").setLevel(logging.WARNING)
        _configured = True

    logger = logging.getLogger(service_name)
    logger.setLevel(resolved_level)
    return logger
