"""AppleScript helpers: string escaping and the osascript runner.

User text crosses two quoting layers before it reaches System Events:

1. the AppleScript string literal (``"..."``), which cannot hold a raw
   line break, so breaks become ``" & return & "`` concatenations;
2. the shell command line that launches ``osascript -e '<script>'``.

Both are applied here; nothing else in the package builds command lines.
"""

import asyncio
import logging
import re
import shlex
from typing import Optional

from .errors import AutomationExecutionError

logger = logging.getLogger(__name__)

LINE_BREAK = '" & return & "'
_LINE_BREAKS = re.compile(r"\r\n|\r|\n")


def escape_applescript_string(text: str) -> str:
    """Escape ``text`` for use between double quotes in AppleScript."""
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    # after quote escaping, so the concatenation quotes stay live
    return _LINE_BREAKS.sub(LINE_BREAK, escaped)


def applescript_string(text: str) -> str:
    """Return ``text`` as a complete AppleScript string literal."""
    return f'"{escape_applescript_string(text)}"'


def build_command(script: str, osascript: str = "osascript") -> str:
    """Return the shell command line that runs ``script``."""
    return f"{shlex.quote(osascript)} -e {shlex.quote(script)}"


async def _wait_until_done(task: "asyncio.Future") -> None:
    """Wait for ``task`` even while the current task is being cancelled."""
    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            continue


class AppleScriptRunner:
    """Runs AppleScript through ``osascript`` in a subprocess shell."""

    def __init__(self, osascript: str = "osascript", timeout: Optional[float] = None):
        self.osascript = osascript
        self.timeout = timeout

    async def execute(self, script: str) -> str:
        """Run ``script`` and return its stdout without trailing whitespace.

        Raises:
            AutomationExecutionError: If the process cannot start, exits
                non-zero or runs past ``timeout``.
        """
        command = build_command(script, self.osascript)
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise AutomationExecutionError(f"Failed to execute AppleScript: {e}") from e

        communicate = asyncio.ensure_future(process.communicate())
        try:
            stdout, stderr = await asyncio.wait_for(asyncio.shield(communicate), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await _wait_until_done(communicate)
            raise AutomationExecutionError(
                f"Failed to execute AppleScript: timed out after {self.timeout}s"
            )
        except asyncio.CancelledError:
            # the script keeps typing; hold the caller until osascript exits
            logger.warning("AppleScript call cancelled, waiting for osascript to exit")
            await _wait_until_done(communicate)
            raise

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace").strip()
        if process.returncode != 0:
            logger.error("AppleScript execution error (exit %s): %s", process.returncode, err)
            raise AutomationExecutionError(
                f"Failed to execute AppleScript: exit status {process.returncode}: {err}",
                returncode=process.returncode,
                stderr=err,
            )
        return out.rstrip()
