"""Run chat-supplied command lines without a shell."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass

LOGGER = logging.getLogger(__name__)

# Upper bound on draining output once the process group has been killed.
_DRAIN_SECONDS = 2.0


@dataclass(slots=True)
class ShellResult:
    ok: bool
    output: str = ""
    error: str = ""


async def run_command(cmdline: str, timeout_seconds: float) -> ShellResult:
    """Execute a whitespace-tokenized command and capture combined output.

    The first token is the program and the rest are its arguments; no shell
    metacharacters are interpreted.
    """
    parts = cmdline.split()
    if not parts:
        return ShellResult(ok=False, error="no command provided")

    try:
        process = await asyncio.create_subprocess_exec(
            *parts,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            start_new_session=True,
        )
    except OSError as exc:
        LOGGER.warning("Failed to start %r: %s", parts[0], exc)
        return ShellResult(ok=False, error=str(exc))

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        _kill_group(process)
        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            await process.wait()
            stdout = b""
        LOGGER.warning("Command %r killed after %ss", parts[0], timeout_seconds)
        return ShellResult(
            ok=False,
            output=stdout.decode(errors="replace"),
            error=f"timed out after {timeout_seconds:g}s",
        )

    output = stdout.decode(errors="replace")
    if process.returncode != 0:
        return ShellResult(ok=False, output=output, error=f"exit status {process.returncode}")
    return ShellResult(ok=True, output=output)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the child and everything it spawned."""

    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as exc:
        LOGGER.warning("Failed to kill process group %s: %s", process.pid, exc)
        process.kill()
