"""Process termination, existence polling and privilege escalation."""

import asyncio
import base64
import logging

from portio.models import CommandError
from portio.probe import WINDOWS, CommandRunner, current_platform, run_command

logger = logging.getLogger(__name__)

# Exit status of PowerShell when the UAC prompt is declined
UAC_CANCELLED = 1

ELEVATED_SCRIPT = """\
$Host.UI.RawUI.WindowTitle = 'portio - Admin Kill'
Write-Host 'portio - Killing process with admin privileges...' -ForegroundColor Yellow
Write-Host ''
Write-Host 'Process: {label} (PID: {pid})' -ForegroundColor Cyan
Write-Host ''
taskkill /F /PID {pid}
Write-Host ''
Write-Host 'Command executed. Check portio for result.' -ForegroundColor Green
Start-Sleep -Seconds 1"""


def encode_powershell(script: str) -> str:
    """Encode a script for PowerShell's -EncodedCommand (base64 of UTF-16LE)."""
    return base64.b64encode(script.encode("utf-16-le")).decode("ascii")


def elevated_windows_command(pid: int, label: str) -> tuple[str, ...]:
    """Build the argv that opens an elevated PowerShell running the kill script."""
    # Single quotes inside a PowerShell single-quoted string are doubled
    script = ELEVATED_SCRIPT.format(pid=pid, label=label.replace("'", "''"))
    start_process = (
        "Start-Process powershell -Verb RunAs -ArgumentList "
        "'-NoProfile', '-ExecutionPolicy', 'Bypass', "
        f"'-EncodedCommand', '{encode_powershell(script)}'"
    )
    return ("powershell", "-Command", start_process)


class ProcessTerminator:
    """
    Kills processes by pid with the platform's forceful kill command.

    Every call catches command failures and turns them into plain return
    values, so callers never see an exception from here.
    """

    def __init__(self, platform: str | None = None, runner: CommandRunner = run_command) -> None:
        self._platform = platform or current_platform()
        self._runner = runner
        self._background: set[asyncio.Task[None]] = set()

    @property
    def platform(self) -> str:
        return self._platform

    async def terminate(self, pid: int) -> bool:
        """Forcefully kill a process. Returns False on any failure."""
        if self._platform == WINDOWS:
            argv: tuple[str, ...] = ("taskkill", "/F", "/PID", str(pid))
        else:
            argv = ("kill", "-9", str(pid))
        try:
            result = await self._runner(*argv)
        except CommandError as exc:
            logger.warning("Kill of pid %d could not run: %s", pid, exc)
            return False
        if not result.ok:
            logger.info("Kill of pid %d failed: %s", pid, result.stderr.strip())
            return False
        return True

    async def exists(self, pid: int) -> bool:
        """Check whether a pid is still present. A reused pid counts as present."""
        try:
            if self._platform == WINDOWS:
                result = await self._runner("tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV")
                return "INFO:" not in result.stdout and str(pid) in result.stdout
            result = await self._runner("ps", "-p", str(pid), "-o", "pid=")
            return result.stdout.strip() == str(pid)
        except CommandError as exc:
            logger.warning("Existence check of pid %d could not run: %s", pid, exc)
            return False

    async def terminate_elevated(self, pid: int, label: str) -> None:
        """
        Launch an elevated kill and return without waiting for it.

        On Unix the kill is re-issued through non-interactive sudo, so missing
        credentials fail at once instead of prompting on the terminal. On Windows a new elevated
        PowerShell window runs the kill and prints its status. The outcome is
        not observed here; poll exists() afterwards.
        """
        if self._platform == WINDOWS:
            argv = elevated_windows_command(pid, label)
        else:
            argv = ("sudo", "-n", "kill", "-9", str(pid))

        logger.info("Launching elevated kill of %s (pid %d)", label, pid)
        task = asyncio.create_task(self._reap(argv))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def cancel_pending(self) -> None:
        """Cancel elevated kills that are still running."""
        for task in list(self._background):
            task.cancel()

    async def _reap(self, argv: tuple[str, ...]) -> None:
        try:
            result = await self._runner(*argv)
        except CommandError as exc:
            logger.error("Failed to launch elevated kill: %s", exc)
            return
        if result.ok:
            return
        if self._platform == WINDOWS and result.returncode == UAC_CANCELLED:
            logger.info("Elevation prompt was cancelled")
            return
        logger.error("Elevated kill exited with status %d: %s", result.returncode, result.stderr.strip())
