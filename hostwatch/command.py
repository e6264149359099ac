from __future__ import annotations

import logging
import subprocess
from typing import Sequence

from hostwatch.logging_utils import TRACE_LEVEL

logger = logging.getLogger("CommandRunner")


class CommandError(Exception):
    """Base class for every way an external tool can fail to give us output."""

    def __init__(self, program: str, message: str) -> None:
        super().__init__(f"{program}: {message}")
        self.program = program


class CommandNotFoundError(CommandError):
    pass


class CommandFailedError(CommandError):
    def __init__(self, program: str, returncode: int, stderr: str) -> None:
        super().__init__(program, f"exited with {returncode}: {stderr.strip()}")
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    def __init__(self, program: str, timeout: float) -> None:
        super().__init__(program, f"timed out after {timeout:g}s")
        self.timeout = timeout


def run_command(program: str, args: Sequence[str], timeout: float) -> str:
    """Run ``program`` with ``args`` and return its stdout.

    The child never outlives the call: ``subprocess.run`` kills and reaps it
    when ``timeout`` expires.

    Raises:
        CommandNotFoundError: the executable is missing or could not be launched.
        CommandFailedError: the process exited non-zero.
        CommandTimeoutError: the process did not finish within ``timeout`` seconds.
    """
    command = [program, *args]
    logger.debug("Running: %s", " ".join(command))
    try:
        result = subprocess.run(
            command,
            check=False,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise CommandNotFoundError(program, "not found") from exc
    except PermissionError as exc:
        raise CommandNotFoundError(program, f"cannot be executed ({exc})") from exc
    except subprocess.TimeoutExpired as exc:
        raise CommandTimeoutError(program, timeout) from exc
    except OSError as exc:
        raise CommandNotFoundError(program, f"failed to launch ({exc})") from exc

    if result.returncode != 0:
        if result.stderr:
            logger.log(TRACE_LEVEL, "stderr: %s", result.stderr.strip())
        raise CommandFailedError(program, result.returncode, result.stderr or "")
    if result.stdout:
        logger.log(TRACE_LEVEL, "stdout: %s", result.stdout.strip())
    return result.stdout or ""
