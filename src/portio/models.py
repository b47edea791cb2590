"""Data models for portio."""

from dataclasses import dataclass


class PortioError(Exception):
    """Base class for portio errors."""


class CommandError(PortioError):
    """An external command could not be spawned."""


class ProbeError(PortioError):
    """The listening-socket table could not be read."""


class MetadataUnavailable(PortioError):
    """Name and command line of a process could not be resolved."""


@dataclass(slots=True, frozen=True)
class ProcessRecord:
    """Immutable record of a process listening on a port."""

    pid: int
    port: int
    process_name: str
    command: str  # Short label derived from full_command
    full_command: str | None = None

    def to_dict(self) -> dict[str, object]:
        """Return the record in its JSON output shape."""
        data: dict[str, object] = {
            "pid": self.pid,
            "port": self.port,
            "processName": self.process_name,
            "command": self.command,
        }
        if self.full_command is not None:
            data["fullCommand"] = self.full_command
        return data


# Session modes. Exactly one is active at a time.


@dataclass(slots=True, frozen=True)
class Browsing:
    """Normal navigation."""


@dataclass(slots=True, frozen=True)
class Filtering:
    """Typing a filter query."""


@dataclass(slots=True, frozen=True)
class ConfirmSingleKill:
    """Waiting for confirmation to kill one process."""

    pid: int


@dataclass(slots=True, frozen=True)
class ConfirmMultiKill:
    """Waiting for confirmation to kill every selected process."""

    pids: tuple[int, ...]


@dataclass(slots=True, frozen=True)
class AwaitingAdminRetry:
    """A kill failed; offering an elevated retry."""

    pid: int


SessionMode = Browsing | Filtering | ConfirmSingleKill | ConfirmMultiKill | AwaitingAdminRetry
