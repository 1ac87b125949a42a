#!/usr/bin/env python3
"""
Unit Tests for the gdb / lldb / cdb strategies

No debugger is ever started: spawn and sleep are replaced by fakes.

Run tests:
    pytest test/test_debugger.py -v
"""

import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from packages.crash_forensics.debugger import CDBDebugger, GDBDebugger, LLDBDebugger
from packages.crash_forensics.models import AnalysisOptions, DebuggerTiming, ProcessRecord


class FakeSpawn:
    """Records calls and writes canned debugger output to the output file."""

    def __init__(self, output="#0  0x0000 in crash ()\n", exit_code=0, error=None):
        self.output = output
        self.exit_code = exit_code
        self.error = error
        self.calls = []

    def __call__(self, executable, args, output_file=None, timeout=None):
        self.calls.append((executable, list(args)))
        if output_file is not None:
            Path(output_file).write_text(self.output)
        if self.error is not None:
            raise self.error
        return self.exit_code


@pytest.fixture
def record(tmp_path):
    return ProcessRecord(pid=4321, root_dir=str(tmp_path))


@pytest.fixture
def options():
    return AnalysisOptions(
        core_directory="",
        timing=DebuggerTiming(settle_delay=5, think_time=10, drain_time=2),
        dump_wait_timeout=1,
    )


class TestGDBDebugger:
    """gdb on Linux."""

    def test_batch_command_targets_literal_core_when_directory_empty(self, record, options):
        spawn = FakeSpawn()
        gdb = GDBDebugger(spawn=spawn, sleep=MagicMock())

        run = gdb.run(record, options, "/work/arangod_4321")

        executable, args = spawn.calls[0]
        assert executable == "gdb"
        assert args == ["-batch", "-ex", "bt full", "-ex", "thread apply all bt", "/work/arangod_4321", "core"]
        assert run.hint == "gdb /work/arangod_4321 core"
        assert run.output == "#0  0x0000 in crash ()\n"
        assert run.exit_code == 0
        assert run.diagnostic is None

    def test_hint_keeps_core_glob_verbatim(self, record, options):
        options.core_directory = "/var/tmp/core-*-4321-*"
        gdb = GDBDebugger(spawn=FakeSpawn(), sleep=MagicMock())

        run = gdb.run(record, options, "/work/arangod_4321")

        assert run.hint == "gdb /work/arangod_4321 /var/tmp/core-*-4321-*"

    def test_hint_quotes_binary_but_not_core_glob(self):
        hint = GDBDebugger().reproduction_command("/work dir/arangod_4321", "/var/tmp/core-*-4321-*")

        assert hint == "gdb '/work dir/arangod_4321' /var/tmp/core-*-4321-*"

    def test_batch_command_expands_core_glob(self, record, options, tmp_path):
        core = tmp_path / "core-arangod-4321-1700000000"
        core.write_bytes(b"\x7fELF")
        options.core_directory = str(tmp_path / "core-*-4321-*")
        spawn = FakeSpawn()

        GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        assert spawn.calls[0][1][-1] == str(core)

    def test_settle_delay_before_launch(self, record, options):
        sleep = MagicMock()
        GDBDebugger(spawn=FakeSpawn(), sleep=sleep).run(record, options, "/work/arangod_4321")
        sleep.assert_called_once_with(5)

    def test_pipe_mode_script_and_timing(self, record, options):
        options.batch_mode = False
        options.core_directory = "/var/tmp/core-*-4321-*"
        spawn = FakeSpawn()

        run = GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        executable, args = spawn.calls[0]
        assert executable == "/bin/bash"
        assert args[0] == "-c"
        script = args[1]
        assert script.startswith("(printf 'bt full\\nthread apply all bt\\n'; sleep 10; echo quit; sleep 2)")
        assert script.endswith("| gdb /work/arangod_4321 /var/tmp/core-*-4321-*")
        assert run.hint == "gdb /work/arangod_4321 /var/tmp/core-*-4321-*"

    def test_missing_debugger_still_produces_hint(self, record, options):
        spawn = FakeSpawn(output="", error=FileNotFoundError(2, "No such file or directory", "gdb"))

        run = GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        assert run.hint == "gdb /work/arangod_4321 core"
        assert "could not be started" in run.diagnostic
        assert run.output == ""

    def test_nonzero_exit_keeps_output(self, record, options):
        spawn = FakeSpawn(output="core: No such file or directory.\n", exit_code=1)

        run = GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        assert run.exit_code == 1
        assert "No such file" in run.output
        assert run.diagnostic is None
        assert run.hint

    def test_timeout_becomes_diagnostic(self, record, options):
        options.debugger_timeout = 30
        spawn = FakeSpawn(error=subprocess.TimeoutExpired("gdb", 30))

        run = GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        assert "did not finish" in run.diagnostic
        assert run.hint == "gdb /work/arangod_4321 core"

    def test_output_file_is_removed(self, record, options):
        written = []

        def spawn(executable, args, output_file=None, timeout=None):
            written.append(Path(output_file))
            Path(output_file).write_text("bt")
            return 0

        GDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        assert not written[0].exists()


class TestLLDBDebugger:
    """lldb on macOS."""

    def test_commands_walk_five_frames(self):
        cmds = LLDBDebugger().commands()

        assert cmds[0] == "bt"
        assert cmds[-1] == "thread backtrace all"
        assert cmds[1:-1] == ["frame variable", "up"] * 5

    def test_core_in_cores_directory(self, record, options):
        spawn = FakeSpawn()

        run = LLDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        executable, args = spawn.calls[0]
        assert executable == "lldb"
        assert args[:4] == ["/work/arangod_4321", "-c", "/cores/core.4321", "--batch"]
        assert run.hint == "lldb /work/arangod_4321 -c /cores/core.4321"

    def test_hint_quotes_paths_with_spaces(self):
        hint = LLDBDebugger().reproduction_command("/work dir/arangod_4321", "/cores/core.4321")

        assert hint == "lldb '/work dir/arangod_4321' -c /cores/core.4321"

    def test_pipe_mode(self, record, options):
        options.batch_mode = False
        spawn = FakeSpawn()

        LLDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "/work/arangod_4321")

        script = spawn.calls[0][1][1]
        assert "frame variable\\nup\\n" in script
        assert "sleep 10; echo quit; sleep 2" in script
        assert script.endswith("| lldb /work/arangod_4321 -c /cores/core.4321")


class TestCDBDebugger:
    """cdb on Windows."""

    def test_dump_present_runs_cdb(self, record, options):
        dump = Path(record.root_dir) / "core.dmp"
        dump.write_bytes(b"MDMP")
        spawn = FakeSpawn(output="FAULTING_IP: ...\n")
        binary = os.path.join("C:", "work", "arangod.exe")

        run = CDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, binary)

        executable, args = spawn.calls[0]
        assert executable == "cdb"
        assert args[:2] == ["-z", str(dump)]
        assert args[2:4] == ["-i", binary]
        assert args[-2:] == ["-c", "kp; ~*kb; dv; !analyze -v; q"]
        assert run.hint.startswith("cdb -z ")
        assert binary in run.hint
        assert str(dump) in run.hint
        assert '"kp; ~*kb; dv; !analyze -v; q"' in run.hint
        assert run.output == "FAULTING_IP: ...\n"

    def test_hint_names_windows_binary_verbatim(self):
        hint = CDBDebugger().reproduction_command(r"C:\work\arangod.exe", r"C:\root\core.dmp")

        assert hint == r'cdb -z C:\root\core.dmp -i C:\work\arangod.exe -c "kp; ~*kb; dv; !analyze -v; q"'

    def test_hint_quotes_binary_with_spaces(self):
        hint = CDBDebugger().reproduction_command(r"C:\Program Files\db\arangod.exe", r"C:\root\core.dmp")

        assert r'-i "C:\Program Files\db\arangod.exe"' in hint

    def test_waits_for_dump_writer(self, record, options):
        (Path(record.root_dir) / "core.dmp").write_bytes(b"MDMP")
        record.monitor = MagicMock(pid=999)

        CDBDebugger(spawn=FakeSpawn(), sleep=MagicMock()).run(record, options, "arangod.exe")

        record.monitor.wait.assert_called_once_with(timeout=1)

    def test_missing_dump_skips_debugger(self, record, options):
        spawn = FakeSpawn()

        with patch("packages.crash_forensics.debugger.status_external") as mock_status:
            run = CDBDebugger(spawn=spawn, sleep=MagicMock()).run(record, options, "arangod.exe")

        mock_status.assert_called_once_with(None, blocking=True, timeout=1)
        assert spawn.calls == []
        assert run.hint == ""
        assert not run.invoked
        assert "not found" in run.diagnostic
