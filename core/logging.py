#!/usr/bin/env python3
"""
Corewatch Logging

Shared logger for all corewatch modules plus the console colours used to
make crash announcements stand out in harness output.
"""

import logging
import os
import sys
from typing import Optional

from core.config import CorewatchConfig


class Colors:
    """ANSI colour codes for console output."""
    RED = '\033[91m'
    YELLOW = '\033[93m'
    BOLD = '\033[1m'
    END = '\033[0m'


def highlight(message: str, color: str = Colors.RED) -> str:
    """Wrap a message in a colour, resetting afterwards."""
    if not CorewatchConfig.color_enabled():
        return message
    return f"{color}{message}{Colors.END}"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Return the corewatch logger, configuring its handlers on first use.

    Args:
        name: Optional child logger name (e.g. "debugger")

    Returns:
        logging.Logger writing to stderr, and to COREWATCH_LOG_FILE if set
    """
    root = logging.getLogger(CorewatchConfig.LOGGER_NAME)

    if not root.handlers:
        root.setLevel(CorewatchConfig.get_log_level())

        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(CorewatchConfig.LOG_FORMAT_CONSOLE))
        root.addHandler(console)

        log_file = os.environ.get(CorewatchConfig.ENV_LOG_FILE)
        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(logging.Formatter(CorewatchConfig.LOG_FORMAT_FILE))
            root.addHandler(file_handler)

    if name:
        return root.getChild(name)
    return root
