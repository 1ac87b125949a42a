#!/usr/bin/env python3
"""
Corewatch Centralized Configuration Module

This module provides centralized configuration management for corewatch,
including core file locations, debugger executables, timing and logging settings.
"""

import logging
import os
from typing import Dict, Optional


class CorewatchConfig:
    """Centralized configuration for corewatch."""

    # Version
    VERSION = "0.1.0"

    # Core File Locations
    CORE_PATTERN_FILE = "/proc/sys/kernel/core_pattern"
    SYSTEMD_COREDUMP_DIR = "/var/lib/systemd/coredump"
    MACOS_CORE_DIR = "/cores"
    WINDOWS_DUMP_NAME = "core.dmp"

    # Debugger Executables
    GDB_PATH = "gdb"
    LLDB_PATH = "lldb"
    CDB_PATH = "cdb"
    SHELL_PATH = "/bin/bash"

    # Timing Configuration (seconds)
    SETTLE_DELAY = 5                 # let pending I/O settle before launching the debugger
    THINK_TIME = 10                  # debugger think-time before "quit" in pipe mode
    DRAIN_TIME = 2                   # pipe stays open after "quit"
    DUMP_WAIT_TIMEOUT = 300          # 5 minutes for the Windows dump writer

    # LLDB has no "bt full", locals are printed frame by frame
    LLDB_FRAME_COUNT = 5

    # Environment Variables
    ENV_SETTLE_DELAY = "COREWATCH_SETTLE_DELAY"
    ENV_THINK_TIME = "COREWATCH_THINK_TIME"
    ENV_DRAIN_TIME = "COREWATCH_DRAIN_TIME"
    ENV_DUMP_WAIT_TIMEOUT = "COREWATCH_DUMP_WAIT_TIMEOUT"
    ENV_LOG_LEVEL = "COREWATCH_LOG_LEVEL"
    ENV_LOG_FILE = "COREWATCH_LOG_FILE"
    ENV_NO_COLOR = "NO_COLOR"

    # Logging Configuration
    LOGGER_NAME = "corewatch"
    DEFAULT_LOG_LEVEL = "INFO"
    LOG_FORMAT_CONSOLE = "[%(levelname)s] %(module)s: %(message)s"
    LOG_FORMAT_FILE = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @staticmethod
    def _env_seconds(name: str, default: float) -> float:
        value = os.environ.get(name)
        if value is None or value.strip() == "":
            return default
        try:
            return float(value)
        except ValueError:
            return default

    @staticmethod
    def get_timing_defaults() -> Dict[str, float]:
        """
        Resolve debugger timing constants, honoring environment overrides.

        Returns:
            dict: settle_delay, think_time and drain_time in seconds
        """
        return {
            "settle_delay": CorewatchConfig._env_seconds(
                CorewatchConfig.ENV_SETTLE_DELAY, CorewatchConfig.SETTLE_DELAY),
            "think_time": CorewatchConfig._env_seconds(
                CorewatchConfig.ENV_THINK_TIME, CorewatchConfig.THINK_TIME),
            "drain_time": CorewatchConfig._env_seconds(
                CorewatchConfig.ENV_DRAIN_TIME, CorewatchConfig.DRAIN_TIME),
        }

    @staticmethod
    def get_dump_wait_timeout() -> Optional[float]:
        """
        Resolve how long to wait for the Windows dump writer.

        A value of 0 (or negative) in COREWATCH_DUMP_WAIT_TIMEOUT means wait forever.

        Returns:
            Timeout in seconds, or None for an unbounded wait
        """
        timeout = CorewatchConfig._env_seconds(
            CorewatchConfig.ENV_DUMP_WAIT_TIMEOUT, CorewatchConfig.DUMP_WAIT_TIMEOUT)
        return timeout if timeout > 0 else None

    @staticmethod
    def get_log_level() -> str:
        """Log level name, honoring COREWATCH_LOG_LEVEL; unknown names fall back to the default."""
        level = os.environ.get(CorewatchConfig.ENV_LOG_LEVEL, CorewatchConfig.DEFAULT_LOG_LEVEL).strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            return CorewatchConfig.DEFAULT_LOG_LEVEL
        return level

    @staticmethod
    def color_enabled() -> bool:
        """Console colours are on unless NO_COLOR is set (https://no-color.org)."""
        return not os.environ.get(CorewatchConfig.ENV_NO_COLOR)
