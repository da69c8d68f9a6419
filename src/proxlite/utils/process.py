"""Async subprocess helpers."""

import asyncio
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from proxlite.utils.logging import redact


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Result from running a command."""
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def run_command(
    cmd: List[str],
    check: bool = True,
    capture_output: bool = True,
    timeout: Optional[float] = None,
    input: Optional[bytes] = None,
    secrets: Sequence[str] = (),
    **kwargs
) -> CommandResult:
    """Run a command asynchronously.

    Values listed in ``secrets`` are masked in the debug log line and in the
    ``cmd`` attribute of any raised ``CalledProcessError``.
    """
    logger.debug(f"Running command: {redact(' '.join(cmd), secrets)}")

    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdin=asyncio.subprocess.PIPE if input is not None else None,
        stdout=asyncio.subprocess.PIPE if capture_output else None,
        stderr=asyncio.subprocess.PIPE if capture_output else None,
        **kwargs
    )

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(input=input),
            timeout=timeout
        )
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise subprocess.TimeoutExpired([redact(part, secrets) for part in cmd], timeout)

    result = CommandResult(
        returncode=process.returncode,
        stdout=stdout.decode() if stdout else "",
        stderr=stderr.decode() if stderr else "",
    )

    if check and process.returncode != 0:
        error = subprocess.CalledProcessError(
            process.returncode, [redact(part, secrets) for part in cmd]
        )
        error.stdout = result.stdout
        error.stderr = result.stderr
        raise error

    return result
