"""Test doubles shared by the portio test suite."""

from portio.models import CommandError, ProcessRecord
from portio.probe import CommandResult
from portio.registry import is_dev_port


class FakeRunner:
    """Command runner that replays canned results and records every call."""

    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []

    def add(self, argv, stdout="", returncode=0, stderr=""):
        self.responses[argv] = CommandResult(returncode, stdout, stderr)

    async def __call__(self, *args: str) -> CommandResult:
        self.calls.append(args)
        response = self.responses.get(args, self.responses.get(args[0]))
        if response is None:
            return CommandResult(1, "", f"{args[0]}: unexpected call")
        if isinstance(response, Exception):
            raise response
        return response


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(0, stdout, "")


def failed(stderr: str = "failed", returncode: int = 1) -> CommandResult:
    return CommandResult(returncode, "", stderr)


def missing(name: str) -> CommandError:
    return CommandError(f"cannot run {name}: not found")


class FakeBuilder:
    """Registry builder serving a fixed list of records."""

    def __init__(self, records=()):
        self.records = tuple(records)
        self.calls: list[bool] = []

    async def build_registry(self, include_all_ports: bool = True) -> tuple[ProcessRecord, ...]:
        self.calls.append(include_all_ports)
        if include_all_ports:
            return self.records
        return tuple(record for record in self.records if is_dev_port(record.port))

    async def find_by_port(self, port: int) -> ProcessRecord | None:
        return next((record for record in self.records if record.port == port), None)


class FakeTerminator:
    """Terminator whose kills succeed unless the pid is listed in ``fail``."""

    def __init__(self, fail=(), survive_elevation=()):
        self.fail = set(fail)
        self.survivors = set(survive_elevation)
        self.killed: list[int] = []
        self.elevated: list[tuple[int, str]] = []
        self.exists_calls: list[int] = []
        self.cancelled = False

    async def terminate(self, pid: int) -> bool:
        if pid in self.fail:
            return False
        self.killed.append(pid)
        return True

    async def exists(self, pid: int) -> bool:
        self.exists_calls.append(pid)
        return pid in self.survivors

    async def terminate_elevated(self, pid: int, label: str) -> None:
        self.elevated.append((pid, label))

    def cancel_pending(self) -> None:
        self.cancelled = True
