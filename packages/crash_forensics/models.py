#!/usr/bin/env python3
"""
Records shared between the harness and the crash analyser.

The harness owns ProcessRecord; the analyser only adds the reproduction
hint to its exit status.
"""

import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from core.config import CorewatchConfig


@dataclass
class DebuggerTiming:
    """Delays (seconds) around a scripted debugger session."""
    settle_delay: float = CorewatchConfig.SETTLE_DELAY
    think_time: float = CorewatchConfig.THINK_TIME
    drain_time: float = CorewatchConfig.DRAIN_TIME

    @classmethod
    def from_config(cls) -> "DebuggerTiming":
        return cls(**CorewatchConfig.get_timing_defaults())


@dataclass
class ProcessRecord:
    """The crashed process as described by the harness."""
    pid: int
    root_dir: str
    binary_path: str = ""
    exit_status: Dict[str, Any] = field(default_factory=dict)
    monitor: Optional[subprocess.Popen] = None  # Windows dump writer

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary suitable for YAML output."""
        return {
            "pid": self.pid,
            "root_dir": self.root_dir,
            "binary_path": self.binary_path,
            "exit_status": dict(self.exit_status),
            "monitor": self.monitor.pid if self.monitor is not None else None,
        }


@dataclass
class AnalysisOptions:
    """
    Options for one crash analysis.

    core_directory: "" means a file named "core" in the current directory,
        otherwise a path or glob where core files are deposited. Overwritten
        when the kernel core pattern is resolved.
    batch_mode: drive gdb/lldb with their batch flags instead of piping a
        timed script into an interactive session.
    """
    core_directory: str = ""
    batch_mode: bool = True
    timing: DebuggerTiming = field(default_factory=DebuggerTiming.from_config)
    dump_wait_timeout: Optional[float] = field(default_factory=CorewatchConfig.get_dump_wait_timeout)
    debugger_timeout: Optional[float] = None
