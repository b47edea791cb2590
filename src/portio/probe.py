"""Platform probes that list listening TCP sockets."""

import asyncio
import logging
import sys
from dataclasses import dataclass
from typing import Protocol

from portio.models import CommandError, ProbeError

logger = logging.getLogger(__name__)

WINDOWS = "win32"
MACOS = "darwin"
LINUX = "linux"

PROBE_COMMANDS: dict[str, tuple[str, ...]] = {
    WINDOWS: ("netstat", "-ano"),
    MACOS: ("lsof", "-iTCP", "-sTCP:LISTEN", "-n", "-P"),
    LINUX: ("ss", "-ltnp"),
}


def current_platform() -> str:
    """Return the platform family used to pick OS commands."""
    if sys.platform.startswith("win"):
        return WINDOWS
    if sys.platform == "darwin":
        return MACOS
    return LINUX


@dataclass(slots=True, frozen=True)
class CommandResult:
    """Outcome of one external command."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Callable that runs an argv to completion."""

    async def __call__(self, *args: str) -> CommandResult: ...


async def run_command(*args: str) -> CommandResult:
    """
    Run a command and wait for it to exit.

    Raises:
        CommandError: If the executable cannot be spawned.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise CommandError(f"cannot run {args[0]}: {exc}") from exc

    stdout, stderr = await proc.communicate()
    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )


class PlatformProbe:
    """Runs the OS-native listing command and returns its raw lines."""

    def __init__(self, platform: str | None = None, runner: CommandRunner = run_command) -> None:
        self._platform = platform or current_platform()
        self._runner = runner

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def command(self) -> tuple[str, ...]:
        """The argv of the listing command for this platform."""
        try:
            return PROBE_COMMANDS[self._platform]
        except KeyError:
            raise ProbeError(f"unsupported platform: {self._platform}") from None

    async def list_listening_sockets(self) -> list[str]:
        """
        Run the listing command once.

        Raises:
            ProbeError: If the command cannot be spawned or exits non-zero.
        """
        argv = self.command
        try:
            result = await self._runner(*argv)
        except CommandError as exc:
            raise ProbeError(str(exc)) from exc

        if not result.ok:
            raise ProbeError(
                f"{argv[0]} exited with status {result.returncode}: {result.stderr.strip()}"
            )

        logger.debug("%s returned %d bytes", argv[0], len(result.stdout))
        return result.stdout.splitlines()
