"""Registry builder that turns probe output into ProcessRecords."""

import asyncio
import logging
import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import psutil

from portio.labels import extract_label
from portio.models import CommandError, MetadataUnavailable, ProbeError, ProcessRecord
from portio.probe import LINUX, MACOS, WINDOWS, CommandRunner, PlatformProbe, run_command

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"

DEV_PORTS: frozenset[int] = frozenset(
    {
        3000, 3001, 3002, 3003, 3004, 3005,
        4000, 4001, 4200, 4201,
        5000, 5001, 5173, 5174, 5175,
        8000, 8001, 8080, 8081, 8082, 8083,
        8888, 9000, 9001, 9200, 9229,
        19000, 19001, 19002,
    }
)  # fmt: skip

BACKENDS = ("native", "psutil")

_PORT_RE = re.compile(r":(\d+)$")
_SS_PID_RE = re.compile(r"pid=(\d+)")
_SS_USER_RE = re.compile(r'\("([^"]*)",pid=(\d+)')


def is_dev_port(port: int) -> bool:
    """Check whether a port is in the well-known development port set."""
    return port in DEV_PORTS


@dataclass(slots=True, frozen=True)
class ProbeEntry:
    """A (port, pid) pair parsed from one probe line."""

    port: int
    pid: int
    process_name: str | None = None


def _parse_port(address: str) -> int | None:
    match = _PORT_RE.search(address)
    if not match:
        return None
    port = int(match.group(1))
    return port if 0 <= port <= 65535 else None


def parse_netstat(lines: Iterable[str]) -> list[ProbeEntry]:
    """Parse `netstat -ano` output."""
    entries: list[ProbeEntry] = []
    for line in lines:
        if "LISTENING" not in line:
            continue
        parts = line.split()
        if len(parts) < 5 or not parts[4].isdigit():
            continue
        port = _parse_port(parts[1])
        if port is not None:
            entries.append(ProbeEntry(port=port, pid=int(parts[4])))
    return entries


def parse_lsof(lines: Iterable[str]) -> list[ProbeEntry]:
    """Parse `lsof -iTCP -sTCP:LISTEN -n -P` output."""
    entries: list[ProbeEntry] = []
    for line in list(lines)[1:]:
        if "(LISTEN)" not in line:
            continue
        parts = line.split()
        if len(parts) < 9 or not parts[1].isdigit():
            continue
        port = _parse_port(parts[8])
        if port is not None:
            entries.append(ProbeEntry(port=port, pid=int(parts[1]), process_name=parts[0] or None))
    return entries


def parse_ss(lines: Iterable[str]) -> list[ProbeEntry]:
    """
    Parse `ss -ltnp` output.

    One socket can be shared by several processes, e.g.
    ``users:(("nginx",pid=2,fd=6),("nginx",pid=1,fd=6))``; each pid yields
    its own entry.
    """
    entries: list[ProbeEntry] = []
    for line in list(lines)[1:]:
        parts = line.split()
        if len(parts) < 4 or parts[0] != "LISTEN":
            continue
        port = _parse_port(parts[3])
        if port is None:
            continue
        users = next((part for part in parts[4:] if part.startswith("users:")), None)
        if users is None:
            # Sockets owned by other users are listed without process info
            continue
        names = {int(pid): name for name, pid in _SS_USER_RE.findall(users)}
        for pid in _SS_PID_RE.findall(users):
            entries.append(ProbeEntry(port=port, pid=int(pid), process_name=names.get(int(pid))))
    return entries


PARSERS = {
    WINDOWS: parse_netstat,
    MACOS: parse_lsof,
    LINUX: parse_ss,
}


def dedupe(entries: Iterable[ProbeEntry]) -> list[ProbeEntry]:
    """Drop repeated (port, pid) pairs, keeping the first occurrence."""
    seen: set[tuple[int, int]] = set()
    unique: list[ProbeEntry] = []
    for entry in entries:
        key = (entry.port, entry.pid)
        if key in seen:
            continue
        seen.add(key)
        unique.append(entry)
    return unique


def parse_wmic_list(output: str) -> dict[int, tuple[str, str]]:
    """
    Parse `wmic ... /format:list` blocks into {pid: (name, command_line)}.

    Blocks are separated by blank lines; a ``ProcessId=`` line closes the
    block it belongs to, whatever the field order.
    """
    result: dict[int, tuple[str, str]] = {}
    fields: dict[str, str] = {}

    def flush() -> None:
        pid = fields.get("ProcessId", "")
        if pid.isdigit():
            result[int(pid)] = (fields.get("Name", ""), fields.get("CommandLine", ""))
        fields.clear()

    for raw in output.splitlines():
        line = raw.strip()
        if not line:
            flush()
            continue
        key, sep, value = line.partition("=")
        if sep:
            fields[key] = value.strip()
    flush()
    return result


def filter_records(records: Sequence[ProcessRecord], text: str) -> list[ProcessRecord]:
    """
    Return the records matching a filter query.

    A record matches when the query is a case-insensitive substring of its
    port, pid, process name or command label. An empty query matches all.
    """
    if not text:
        return list(records)
    query = text.lower()
    return [
        record
        for record in records
        if query in str(record.port)
        or query in str(record.pid)
        or query in record.process_name.lower()
        or query in record.command.lower()
    ]


class RegistryBuilder:
    """
    Builds registry snapshots of processes listening on TCP ports.

    The native backend parses OS tool output; the psutil backend reads the
    connection table through psutil. Probe failures never propagate: they
    are logged and produce an empty snapshot.
    """

    def __init__(
        self,
        probe: PlatformProbe | None = None,
        runner: CommandRunner = run_command,
        backend: str = "native",
    ) -> None:
        """
        Initialize the RegistryBuilder.

        Args:
            probe: Probe for the native backend. Defaults to the current platform.
            runner: Command runner used for metadata queries.
            backend: "native" or "psutil".
        """
        if backend not in BACKENDS:
            raise ValueError(f"unknown backend: {backend!r}")
        self._probe = probe or PlatformProbe(runner=runner)
        self._runner = runner
        self._backend = backend

    @property
    def platform(self) -> str:
        return self._probe.platform

    @property
    def backend(self) -> str:
        return self._backend

    async def build_registry(self, include_all_ports: bool = True) -> tuple[ProcessRecord, ...]:
        """Scan listening sockets and return a sorted, deduplicated snapshot."""
        try:
            if self._backend == "psutil":
                records = await asyncio.to_thread(self._collect_psutil)
            else:
                records = await self._collect_native()
        except ProbeError as exc:
            logger.error("Port discovery failed: %s", exc)
            return ()

        if not include_all_ports:
            records = [record for record in records if is_dev_port(record.port)]

        # sorted() is stable, so equal ports keep discovery order
        return tuple(sorted(records, key=lambda record: record.port))

    async def find_by_port(self, port: int) -> ProcessRecord | None:
        """Return the first listener on an exact port, if any."""
        for record in await self.build_registry(include_all_ports=True):
            if record.port == port:
                return record
        return None

    async def _collect_native(self) -> list[ProcessRecord]:
        lines = await self._probe.list_listening_sockets()
        entries = dedupe(PARSERS[self.platform](lines))
        if not entries:
            return []

        if self.platform == WINDOWS:
            metadata = await self._windows_metadata([entry.pid for entry in entries])
        else:
            metadata = await self._unix_metadata(entries)

        records = []
        for entry in entries:
            name, full_command = metadata.get(entry.pid, (None, None))
            records.append(
                ProcessRecord(
                    pid=entry.pid,
                    port=entry.port,
                    process_name=name or entry.process_name or UNKNOWN,
                    command=extract_label(full_command or ""),
                    full_command=full_command,
                )
            )
        return records

    async def _windows_metadata(self, pids: list[int]) -> dict[int, tuple[str | None, str | None]]:
        unique_pids = list(dict.fromkeys(pids))
        pid_filter = " or ".join(f"ProcessId={pid}" for pid in unique_pids)
        try:
            result = await self._runner(
                "wmic",
                "process",
                "where",
                f"({pid_filter})",
                "get",
                "ProcessId,Name,CommandLine",
                "/format:list",
            )
            if not result.ok:
                raise MetadataUnavailable(f"wmic exited with status {result.returncode}")
            parsed = parse_wmic_list(result.stdout)
            return {pid: (name or UNKNOWN, cmd or None) for pid, (name, cmd) in parsed.items()}
        except (CommandError, MetadataUnavailable) as exc:
            logger.warning("Batch process query failed, querying one by one: %s", exc)

        metadata: dict[int, tuple[str | None, str | None]] = {}
        for pid in unique_pids:
            try:
                metadata[pid] = await self._windows_single(pid)
            except (CommandError, MetadataUnavailable) as exc:
                logger.debug("No metadata for pid %d: %s", pid, exc)
                metadata[pid] = (UNKNOWN, None)
        return metadata

    async def _windows_single(self, pid: int) -> tuple[str | None, str | None]:
        result = await self._runner(
            "wmic", "process", "where", f"ProcessId={pid}", "get", "Name,CommandLine", "/format:list"
        )
        if not result.ok:
            raise MetadataUnavailable(f"wmic exited with status {result.returncode}")
        name = None
        command = None
        for raw in result.stdout.splitlines():
            line = raw.strip()
            if line.startswith("Name="):
                name = line.removeprefix("Name=").strip()
            elif line.startswith("CommandLine="):
                command = line.removeprefix("CommandLine=").strip()
        return name, command

    async def _unix_metadata(self, entries: list[ProbeEntry]) -> dict[int, tuple[str | None, str | None]]:
        metadata: dict[int, tuple[str | None, str | None]] = {}
        for entry in entries:
            if entry.pid in metadata:
                continue
            try:
                metadata[entry.pid] = (entry.process_name, await self._unix_command_line(entry.pid))
            except (CommandError, MetadataUnavailable) as exc:
                logger.debug("No command line for pid %d: %s", entry.pid, exc)
                metadata[entry.pid] = (entry.process_name, None)
        return metadata

    async def _unix_command_line(self, pid: int) -> str:
        result = await self._runner("ps", "-p", str(pid), "-o", "command=")
        command = result.stdout.strip()
        if not result.ok or not command:
            raise MetadataUnavailable(f"ps reported nothing for pid {pid}")
        return command

    def _collect_psutil(self) -> list[ProcessRecord]:
        """
        Collect listeners through psutil.

        Runs in a worker thread. Handles NoSuchProcess and AccessDenied per
        process; an AccessDenied on the connection table itself is a probe
        failure.
        """
        try:
            connections = psutil.net_connections(kind="tcp")
        except psutil.AccessDenied as exc:
            raise ProbeError(f"access denied reading connections: {exc}") from exc

        entries = dedupe(
            ProbeEntry(port=conn.laddr.port, pid=conn.pid)
            for conn in connections
            if conn.status == psutil.CONN_LISTEN and conn.pid and conn.laddr
        )

        records: list[ProcessRecord] = []
        for entry in entries:
            name = UNKNOWN
            full_command = None
            try:
                proc = psutil.Process(entry.pid)
                with proc.oneshot():
                    name = proc.name() or UNKNOWN
                    cmdline = proc.cmdline()
                    full_command = " ".join(cmdline) if cmdline else None
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                # Process vanished or is protected; keep the port with no metadata
                pass
            records.append(
                ProcessRecord(
                    pid=entry.pid,
                    port=entry.port,
                    process_name=name,
                    command=extract_label(full_command or ""),
                    full_command=full_command,
                )
            )
        return records
