"""
Thin wrapper around ``osascript`` for driving the Discord desktop app.

Scripts run once per call. Retrying is left to the caller so that the
pattern-table classifier in ``guild_templater.core.classification`` decides
what is worth another attempt.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from guild_templater.constants import DEFAULT_SCRIPT_TIMEOUT
from guild_templater.exceptions import OperationTimeoutError
from guild_templater.utils.logging import log_with_context

OSASCRIPT = "osascript"


class ScriptTimeoutError(OperationTimeoutError):
    """Raised when an osascript process outlives its timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__("osascript", timeout)


@dataclass
class ScriptResult:
    """Outcome of one osascript invocation."""

    success: bool
    output: str
    exit_code: int
    error: str | None = None


def escape_applescript_string(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\r", "\\r")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )


def quote_applescript_string(value: str) -> str:
    """Return ``value`` as a double-quoted AppleScript string literal."""
    return f'"{escape_applescript_string(value)}"'


def run_applescript(
    script: str,
    timeout: float = DEFAULT_SCRIPT_TIMEOUT,
) -> ScriptResult:
    """
    Execute a script through ``osascript``.

    A non-zero exit is reported as an unsuccessful ``ScriptResult`` carrying
    stderr. A process that cannot be started at all is reported the same way.

    Args:
        script: AppleScript source
        timeout: Seconds before the process is killed

    Returns:
        ScriptResult describing the run

    Raises:
        ScriptTimeoutError: If the process exceeds ``timeout``
    """
    command = [OSASCRIPT, "-e", script]

    try:
        completed = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        log_with_context(
            logging.WARNING, f"osascript timed out after {timeout}s", timeout=timeout
        )
        raise ScriptTimeoutError(timeout) from e
    except OSError as e:
        return ScriptResult(success=False, output="", exit_code=1, error=str(e))

    output = (completed.stdout or "").strip()
    error = (completed.stderr or "").strip()

    if completed.returncode != 0:
        return ScriptResult(
            success=False,
            output=output,
            exit_code=completed.returncode,
            error=error or f"Process exited with code {completed.returncode}",
        )

    return ScriptResult(
        success=True,
        output=output,
        exit_code=0,
        error=error or None,
    )
