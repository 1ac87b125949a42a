#!/usr/bin/env python3
"""
Process spawn primitives used to launch debuggers and to wait on the
external dump writer.
"""

import subprocess
from pathlib import Path
from typing import List, Optional

from core.logging import get_logger

logger = get_logger("spawn")


def execute_external_and_wait(
    executable: str,
    args: List[str],
    output_file: Optional[Path] = None,
    timeout: Optional[float] = None,
) -> int:
    """
    Run an external program and block until it exits.

    Args:
        executable: Program to run (looked up on PATH)
        args: Arguments passed to the program
        output_file: If given, stdout and stderr are both written to this file
        timeout: Kill the program after this many seconds (None = wait forever)

    Returns:
        The program's exit code

    Raises:
        OSError: The program could not be started
        subprocess.TimeoutExpired: The timeout elapsed
    """
    cmd = [executable] + list(args)
    logger.debug(f"Executing: {cmd}")

    if output_file is None:
        result = subprocess.run(cmd, timeout=timeout)
        return result.returncode

    with open(output_file, "wb") as out:
        result = subprocess.run(cmd, stdout=out, stderr=subprocess.STDOUT, timeout=timeout)
    return result.returncode


def status_external(
    handle: Optional[subprocess.Popen],
    blocking: bool = True,
    timeout: Optional[float] = None,
) -> Optional[int]:
    """
    Query (or wait for) an external process started by the harness.

    Args:
        handle: The process to check; None means there is nothing to wait for
        blocking: Wait for the process to exit instead of polling once
        timeout: Upper bound for a blocking wait (None = wait forever)

    Returns:
        Exit code, or None if the process is still running
    """
    if handle is None:
        return None

    if not blocking:
        return handle.poll()

    try:
        return handle.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.warning(f"Process {handle.pid} still running after {timeout}s, giving up waiting")
        return None
