#!/usr/bin/env python3
"""
Corewatch Crash Analyser

The bad has happened: a watched server process died. Tell the operator and
gather as much post-mortem information as we can: find the core file, keep a
copy of the crashed binary next to it, run the platform debugger over both and
leave a "how to reproduce this session" hint in the process's exit status.

This is best-effort tooling called from a test/monitoring harness. Nothing in
here may take the harness down, so every failure ends up as a logged
diagnostic on the returned AnalysisResult.
"""

import os
import shutil
import sys
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Type

import yaml

from core.logging import get_logger, highlight
from .core_pattern import CorePatternResolver
from .debugger import CDBDebugger, DebuggerRun, DebuggerStrategy, GDBDebugger, LLDBDebugger
from .models import AnalysisOptions, ProcessRecord
from .spawn import execute_external_and_wait

logger = get_logger("crash_analyser")

HINT_KEY = "gdb_hint"

# Debugger output of the most recent analysis. Single writer: the harness
# handles one crash at a time.
_last_output = ""


def get_last_output() -> str:
    """Debugger output captured by the most recent crash analysis."""
    return _last_output


def _set_last_output(output: str) -> None:
    global _last_output
    _last_output = output


class HostPlatform(Enum):
    LINUX = "linux"
    MACOS = "darwin"
    WINDOWS = "windows"

    @classmethod
    def from_identifier(cls, identifier: str) -> "HostPlatform":
        """Map sys.platform / platform.system() style names onto a platform."""
        identifier = identifier.lower()
        if identifier.startswith("win"):
            return cls.WINDOWS
        if identifier == "darwin":
            return cls.MACOS
        return cls.LINUX

    @classmethod
    def current(cls) -> "HostPlatform":
        return cls.from_identifier(sys.platform)


STRATEGIES: Dict[HostPlatform, Type[DebuggerStrategy]] = {
    HostPlatform.LINUX: GDBDebugger,
    HostPlatform.MACOS: LLDBDebugger,
    HostPlatform.WINDOWS: CDBDebugger,
}


@dataclass
class AnalysisResult:
    """What one crash analysis produced. hint and output are always present."""
    platform: HostPlatform
    hint: str = ""
    output: str = ""
    diagnostic: Optional[str] = None
    core_directory: str = ""
    preserved_binary: Optional[str] = None
    debugger_run: Optional[DebuggerRun] = None

    @property
    def analysed(self) -> bool:
        """True if a debugger was actually run over the core file."""
        return self.debugger_run is not None and self.debugger_run.invoked


class CrashAnalyser:
    """Runs post-mortem analysis of a crashed process with the platform's debugger."""

    def __init__(
        self,
        host_platform: Optional[HostPlatform] = None,
        strategy: Optional[DebuggerStrategy] = None,
        resolver: Optional[CorePatternResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
        spawn: Callable[..., int] = execute_external_and_wait,
    ):
        """
        Initialize the analyser.

        Args:
            host_platform: Platform to analyse for (default: the running host)
            strategy: Debugger strategy to use instead of the platform's own
            resolver: Kernel core pattern resolver (Linux)
            sleep: Sleep function used for the debugger timing
            spawn: Process spawn function used to run the debugger
        """
        self.platform = host_platform or HostPlatform.current()
        self.strategy = strategy or STRATEGIES[self.platform](spawn=spawn, sleep=sleep)
        self.resolver = resolver or CorePatternResolver()

        logger.debug(f"Crash analyser using {self.strategy.name} on {self.platform.value}")

    @staticmethod
    def preservation_path(binary: str, record: ProcessRecord) -> str:
        """Where the crashed binary is kept: <root_dir>/<binary name>_<pid>."""
        bare_binary = os.path.basename(binary) or binary
        return os.path.join(record.root_dir, f"{bare_binary}_{record.pid}")

    def analyse_crash(
        self,
        binary: str,
        record: ProcessRecord,
        options: AnalysisOptions,
        context_label: str,
    ) -> AnalysisResult:
        """
        Analyse a crashed process.

        Args:
            binary: Path of the crashed executable
            record: The crashed process; its exit status gains the debugger hint
            options: Analysis options; core_directory is updated from the core pattern
            context_label: What the harness was doing when the process died

        Returns:
            AnalysisResult (never raises)
        """
        result = AnalysisResult(platform=self.platform, core_directory=options.core_directory)
        try:
            self._analyse(binary, record, options, context_label, result)
        except Exception as e:
            result.diagnostic = f"crash analysis failed: {e}"
            logger.exception(f"✗ Crash analysis of pid {record.pid} failed")

        _set_last_output(result.output)
        return result

    def _analyse(
        self,
        binary: str,
        record: ProcessRecord,
        options: AnalysisOptions,
        context_label: str,
        result: AnalysisResult,
    ) -> None:
        if self.platform == HostPlatform.LINUX:
            decision = self.resolver.resolve_from_file(record.pid)
            if decision is not None:
                if decision.refused:
                    logger.error(highlight(decision.refusal))
                    result.diagnostic = decision.refusal
                    return
                options.core_directory = decision.core_directory
                result.core_directory = decision.core_directory

        store_path = self.preservation_path(binary, record)

        logger.error(highlight(
            f"during: {context_label}: Core dump written; copying {binary} to "
            f"{store_path} for later analysis.\n"
            f"Server shut down with :\n"
            f"{self._describe(record)}"
            f"marking build as crashy."
        ))

        # procdump on Windows works from the original image
        debug_binary = binary
        if self.platform != HostPlatform.WINDOWS:
            debug_binary = self._preserve_binary(binary, store_path, result)

        run = self.strategy.run(record, options, debug_binary)
        result.debugger_run = run
        result.output = run.output
        result.hint = run.hint
        if run.diagnostic and result.diagnostic is None:
            result.diagnostic = run.diagnostic

        if run.hint:
            record.exit_status[HINT_KEY] = f'Run debugger with "{run.hint}"'
            logger.info(f"✓ {record.exit_status[HINT_KEY]}")

    @staticmethod
    def _describe(record: ProcessRecord) -> str:
        try:
            return yaml.safe_dump(record.to_dict(), default_flow_style=False)
        except yaml.YAMLError as e:
            logger.debug(f"Could not render process record as YAML: {e}")
            return f"{record.to_dict()!r}\n"

    @staticmethod
    def _preserve_binary(binary: str, store_path: str, result: AnalysisResult) -> str:
        """Copy the binary to store_path; fall back to the original if that fails."""
        try:
            shutil.copy(binary, store_path)
        except OSError as e:
            result.diagnostic = f"could not preserve {binary} as {store_path}: {e}"
            logger.error(f"✗ {result.diagnostic}")
            return binary

        result.preserved_binary = store_path
        return store_path


def analyse_crash(
    binary: str,
    record: ProcessRecord,
    options: AnalysisOptions,
    context_label: str,
) -> AnalysisResult:
    """Analyse a crash with the running host's debugger."""
    return CrashAnalyser().analyse_crash(binary, record, options, context_label)
