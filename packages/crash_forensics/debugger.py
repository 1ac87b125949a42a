#!/usr/bin/env python3
"""
Native debugger drivers

One strategy per platform debugger: gdb (Linux), lldb (macOS) and cdb
(Windows, part of the WinDBG package). Each builds a short scripted session
against the preserved binary and its core file, runs it, captures the text
output and returns the command line a human can use to reopen the session.

Debugger failures are never raised to the caller; they end up in
DebuggerRun.diagnostic next to whatever output was captured.
"""

import json
import os
import shlex
import subprocess
import tempfile
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from core.config import CorewatchConfig
from core.logging import get_logger
from .core_pattern import locate_core_file
from .models import AnalysisOptions, DebuggerTiming, ProcessRecord
from .spawn import execute_external_and_wait, status_external

logger = get_logger("debugger")

SpawnFn = Callable[..., int]


@dataclass
class DebuggerRun:
    """Outcome of one scripted debugger session."""
    debugger: str
    command: List[str] = field(default_factory=list)
    output: str = ""
    hint: str = ""
    exit_code: Optional[int] = None
    diagnostic: Optional[str] = None

    @property
    def invoked(self) -> bool:
        return bool(self.command)


class DebuggerStrategy(ABC):
    """Drives one native debugger through a scripted post-mortem session."""

    name = ""
    executable = ""

    def __init__(
        self,
        spawn: SpawnFn = execute_external_and_wait,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._spawn = spawn
        self._sleep = sleep

    @abstractmethod
    def commands(self) -> List[str]:
        """Debugger commands issued against the core file, in order."""

    @abstractmethod
    def core_location(self, record: ProcessRecord, options: AnalysisOptions) -> str:
        """Where this debugger expects the core file of the crashed process."""

    @abstractmethod
    def build_command(self, binary: str, core: str, options: AnalysisOptions) -> List[str]:
        """Full argv (executable first) for the scripted session."""

    @abstractmethod
    def reproduction_command(self, binary: str, core: str) -> str:
        """Command line that reopens the same session interactively."""

    def _pipe_command(self, binary_and_core: str, timing: DebuggerTiming) -> List[str]:
        """
        Pipe a timed script into an interactive debugger through bash.

        The debugger gets think_time seconds to work through the script before
        "quit" arrives, and the pipe stays open drain_time seconds longer.
        """
        script = "\\n".join(self.commands()) + "\\n"
        shell_command = (
            f"(printf '{script}'; "
            f"sleep {timing.think_time:g}; "
            f"echo quit; "
            f"sleep {timing.drain_time:g}) | {self.executable} {binary_and_core}"
        )
        return [CorewatchConfig.SHELL_PATH, "-c", shell_command]

    def prepare(self, record: ProcessRecord, options: AnalysisOptions, core: str) -> Optional[str]:
        """Hook run before launching; returns a diagnostic to skip the run."""
        return None

    def run(self, record: ProcessRecord, options: AnalysisOptions, binary: str) -> DebuggerRun:
        """
        Run the scripted session and capture its output.

        Args:
            record: The crashed process
            options: Analysis options (core directory, timing, script mode)
            binary: Path of the preserved copy of the crashed binary

        Returns:
            DebuggerRun; hint is set even when the debugger itself failed
        """
        run = DebuggerRun(debugger=self.name)
        core = self.core_location(record, options)

        skip_reason = self.prepare(record, options, core)
        if skip_reason:
            logger.error(skip_reason)
            run.diagnostic = skip_reason
            return run

        run.command = self.build_command(binary, core, options)
        run.hint = self.reproduction_command(binary, core)
        logger.info(f"running {self.name} {json.dumps(run.command[1:])}")

        self._sleep(options.timing.settle_delay)

        with tempfile.NamedTemporaryFile(suffix=f"_{self.name}_out.txt", delete=False) as out_f:
            output_file = Path(out_f.name)

        try:
            run.exit_code = self._spawn(
                run.command[0],
                run.command[1:],
                output_file=output_file,
                timeout=options.debugger_timeout,
            )
            if run.exit_code != 0:
                logger.warning(f"{self.name} exited with status {run.exit_code}")
        except subprocess.TimeoutExpired:
            run.diagnostic = f"{self.name} did not finish within {options.debugger_timeout}s"
            logger.error(f"✗ {run.diagnostic}")
        except OSError as e:
            run.diagnostic = f"{self.name} could not be started: {e}"
            logger.error(f"✗ {run.diagnostic}")
        finally:
            run.output = self._read_output(output_file)

        if run.output:
            logger.info(run.output)
        elif run.diagnostic is None:
            logger.warning(f"{self.name} produced no output")

        return run

    @staticmethod
    def _read_output(output_file: Path) -> str:
        try:
            return output_file.read_text(errors="replace")
        except OSError as e:
            logger.debug(f"Could not read debugger output {output_file}: {e}")
            return ""
        finally:
            try:
                output_file.unlink()
            except OSError:
                pass


class GDBDebugger(DebuggerStrategy):
    """
    gdb against a Linux core file.

    An empty core directory means the core file is simply named "core" in the
    current directory.
    """

    name = "gdb"
    executable = CorewatchConfig.GDB_PATH

    def commands(self) -> List[str]:
        return [
            "bt full",              # backtrace of the crashing thread, with locals
            "thread apply all bt",  # every thread
        ]

    def core_location(self, record: ProcessRecord, options: AnalysisOptions) -> str:
        return options.core_directory or "core"

    def build_command(self, binary: str, core: str, options: AnalysisOptions) -> List[str]:
        if not options.batch_mode:
            # core stays unquoted so the shell expands the glob
            return self._pipe_command(f"{shlex.quote(binary)} {core}", options.timing)

        cmd = [self.executable, "-batch"]
        for command in self.commands():
            cmd += ["-ex", command]
        return cmd + [binary, locate_core_file(core)]

    def reproduction_command(self, binary: str, core: str) -> str:
        # core stays unquoted so a glob still matches when pasted into a shell
        return f"{self.executable} {shlex.quote(binary)} {core}"


class LLDBDebugger(DebuggerStrategy):
    """lldb against a macOS core file in /cores."""

    name = "lldb"
    executable = CorewatchConfig.LLDB_PATH

    def __init__(self, *args, frame_count: int = CorewatchConfig.LLDB_FRAME_COUNT, **kwargs):
        super().__init__(*args, **kwargs)
        self.frame_count = frame_count

    def commands(self) -> List[str]:
        # no "bt full" in lldb: walk up the topmost frames printing their variables
        cmds = ["bt"]
        for _ in range(self.frame_count):
            cmds += ["frame variable", "up"]
        cmds.append("thread backtrace all")
        return cmds

    def core_location(self, record: ProcessRecord, options: AnalysisOptions) -> str:
        return f"{CorewatchConfig.MACOS_CORE_DIR}/core.{record.pid}"

    def build_command(self, binary: str, core: str, options: AnalysisOptions) -> List[str]:
        if not options.batch_mode:
            return self._pipe_command(f"{shlex.quote(binary)} -c {shlex.quote(core)}", options.timing)

        cmd = [self.executable, binary, "-c", core, "--batch"]
        for command in self.commands():
            cmd += ["-o", command]
        return cmd

    def reproduction_command(self, binary: str, core: str) -> str:
        return f"{self.executable} {shlex.quote(binary)} -c {shlex.quote(core)}"


class CDBDebugger(DebuggerStrategy):
    """
    cdb against the minidump procdump writes to <root_dir>/core.dmp.

    The dump writer is still running when the crash is reported, so we wait
    for it (through the record's monitor handle) before looking for the dump.
    """

    name = "cdb"
    executable = CorewatchConfig.CDB_PATH

    def commands(self) -> List[str]:
        return [
            "kp",           # current thread's backtrace with arguments
            "~*kb",         # all threads' stack traces
            "dv",           # local variables
            "!analyze -v",  # verbose automated crash analysis
            "q",
        ]

    def core_location(self, record: ProcessRecord, options: AnalysisOptions) -> str:
        return os.path.join(record.root_dir, CorewatchConfig.WINDOWS_DUMP_NAME)

    def prepare(self, record: ProcessRecord, options: AnalysisOptions, core: str) -> Optional[str]:
        if record.monitor is not None:
            logger.info(f"Waiting for dump writer (pid {record.monitor.pid}) to finish")
        status_external(record.monitor, blocking=True, timeout=options.dump_wait_timeout)

        if not os.path.exists(core):
            return f"core file {core} not found?"
        return None

    def build_command(self, binary: str, core: str, options: AnalysisOptions) -> List[str]:
        return self._argv(binary, core)

    def reproduction_command(self, binary: str, core: str) -> str:
        return subprocess.list2cmdline(self._argv(binary, core))

    def _argv(self, binary: str, core: str) -> List[str]:
        # -i: the image that produced the dump
        return [
            self.executable,
            "-z", core,
            "-i", binary,
            "-c", "; ".join(self.commands()),
        ]
