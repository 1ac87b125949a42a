#!/usr/bin/env python3
"""
Kernel core pattern resolution

Turns /proc/sys/kernel/core_pattern into a location where the core file of a
crashed process can be found. We assume core files are collected centrally,
e.g. at runtime:

    echo 1 > /proc/sys/kernel/core_uses_pid
    echo /var/tmp/core-%e-%p-%t > /proc/sys/kernel/core_pattern

or at system startup via /etc/sysctl.d/corepattern.conf:

    kernel.core_uses_pid = 1
    kernel.core_pattern = /var/tmp/core-%e-%p-%t

systemd-coredump storage is supported too. apport is not, since it swallows
the core files.
"""

import glob
import os
import re
from dataclasses import dataclass
from typing import Optional

from core.config import CorewatchConfig
from core.logging import get_logger

logger = get_logger("core_pattern")

APPORT_RE = re.compile(r"apport")
SYSTEMD_COREDUMP_RE = re.compile(r"systemd-coredump")
VAR_TMP_RE = re.compile(r"/var/tmp")
GLOB_CHARS_RE = re.compile(r"[*?[]")


@dataclass(frozen=True)
class CoreLocationDecision:
    """Either a core file location to search, or the reason we can't."""
    pattern: str
    core_directory: Optional[str] = None
    refusal: Optional[str] = None

    @property
    def refused(self) -> bool:
        return self.refusal is not None


class CorePatternResolver:
    """Reads and classifies the kernel core pattern."""

    def __init__(self, pattern_file: str = CorewatchConfig.CORE_PATTERN_FILE):
        self.pattern_file = pattern_file

    def read_pattern(self) -> Optional[str]:
        """Return the core pattern, or None if this system has no pattern file."""
        if not os.path.isfile(self.pattern_file):
            return None
        with open(self.pattern_file, "rb") as f:
            raw = f.read()
        return raw.decode("ascii", errors="replace").strip()

    def resolve(self, pattern: str, pid: int) -> CoreLocationDecision:
        """
        Classify a core pattern.

        Args:
            pattern: Contents of the core pattern file
            pid: Process id of the crashed process

        Returns:
            CoreLocationDecision with core_directory set, or with a refusal
        """
        if APPORT_RE.search(pattern):
            return CoreLocationDecision(
                pattern=pattern,
                refusal="apport handles corefiles on your system. "
                        "Uninstall it if you want us to get corefiles for analysis.",
            )

        if SYSTEMD_COREDUMP_RE.search(pattern):
            return CoreLocationDecision(
                pattern=pattern,
                core_directory=f"{CorewatchConfig.SYSTEMD_COREDUMP_DIR}/*core*{pid}*",
            )

        if VAR_TMP_RE.search(pattern):
            core_directory = pattern.replace("%e", "*").replace("%t", "*").replace("%p", str(pid))
            return CoreLocationDecision(pattern=pattern, core_directory=core_directory)

        return CoreLocationDecision(
            pattern=pattern,
            refusal=f"Don't know how to locate corefiles in your system. "
                    f"\"{self.pattern_file}\" contains: \"{pattern}\"",
        )

    def resolve_from_file(self, pid: int) -> Optional[CoreLocationDecision]:
        """Resolve the system's core pattern; None when there is none to resolve."""
        pattern = self.read_pattern()
        if pattern is None:
            logger.debug(f"{self.pattern_file} not present, keeping configured core directory")
            return None

        decision = self.resolve(pattern, pid)
        if not decision.refused:
            logger.info(f"Core pattern '{pattern}' resolved to {decision.core_directory}")
        return decision


def locate_core_file(location: str) -> str:
    """
    Expand a core file glob to a concrete path.

    Picks the newest match. Without glob characters, or without any match, the
    location is returned unchanged so the debugger reports the missing file.
    """
    if not GLOB_CHARS_RE.search(location):
        return location

    matches = glob.glob(location)
    if not matches:
        logger.warning(f"No core file matches {location}")
        return location

    newest = max(matches, key=os.path.getmtime)
    if len(matches) > 1:
        logger.info(f"{len(matches)} core files match {location}, using newest: {newest}")
    return newest
