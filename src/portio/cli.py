"""Command line entry point and one-shot modes."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from portio import __version__
from portio.config import Settings, load_settings
from portio.logging_config import setup_logging
from portio.registry import BACKENDS, RegistryBuilder
from portio.terminator import ProcessTerminator

logger = logging.getLogger(__name__)

LONG_TO_SHORT = {
    "dev": "d",
    "check": "c",
    "kill": "k",
    "mine": "m",
    "force": "f",
    "list": "l",
    "help": "h",
}
SHORT_FLAGS = set(LONG_TO_SHORT.values())
# Short flags that take a value must come last in a joined group
VALUE_FLAGS = {"c", "k", "m", "l"}


def normalize_argv(argv: Sequence[str]) -> list[str]:
    """
    Accept flexible flag spellings.

    ``-dev`` becomes ``--dev`` and joined short flags such as ``-kf`` are
    split into ``-f -k``. Anything else passes through unchanged.
    """
    result: list[str] = []
    for arg in argv:
        if not arg.startswith("-") or arg.startswith("--") or len(arg) <= 2:
            result.append(arg)
            continue
        flag = arg[1:]
        if flag in LONG_TO_SHORT or flag == "wtf":
            result.append(f"--{flag}")
        elif all(char in SHORT_FLAGS for char in flag):
            result.extend(f"-{char}" for char in sorted(flag, key=lambda c: c in VALUE_FLAGS))
        else:
            result.append(arg)
    return result


def port_number(value: str) -> int:
    """argparse type for a TCP port."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port number: {value!r}") from None
    if not 0 <= port <= 65535:
        raise argparse.ArgumentTypeError(f"port out of range: {port}")
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="portio",
        description="Find and kill processes listening on ports.",
        epilog=(
            "Interactive keys: ↑/↓ navigate, Enter kill, space select, / filter, "
            "r refresh, d dev/all, v verbose, p paths, c clear filter, q quit, "
            "A admin kill (after a failed kill)"
        ),
    )
    parser.add_argument("-d", "--dev", action="store_true", help="show only development ports")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("-c", "--check", "--wtf", type=port_number, metavar="PORT", help="show what is running on a port")
    mode.add_argument("-k", "--kill", type=port_number, metavar="PORT", help="kill the process on a port")
    mode.add_argument("-m", "--mine", type=port_number, metavar="PORT", help="kill the process on a port without confirmation")
    mode.add_argument(
        "-l", "--list", type=port_number, nargs="?", const=-1, metavar="PORT", help="print processes as JSON"
    )
    parser.add_argument("-f", "--force", action="store_true", help="skip the kill confirmation")
    parser.add_argument("--backend", choices=BACKENDS, help="discovery backend (default: native)")
    parser.add_argument("--log-file", metavar="PATH", help="also write logs to this file")
    parser.add_argument("--log-level", metavar="LEVEL", help="logging level (default: WARNING)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


async def list_mode(builder: RegistryBuilder, port: int | None, include_all: bool) -> int:
    """Print every record, or the record on one port, as JSON."""
    if port is not None:
        record = await builder.find_by_port(port)
        data: object = record.to_dict() if record else None
    else:
        data = [record.to_dict() for record in await builder.build_registry(include_all)]
    sys.stdout.write(json.dumps(data, indent=2) + "\n")
    return 0


async def check_mode(builder: RegistryBuilder, port: int, console: Console) -> int:
    """Describe the listener on a port."""
    console.print(f"[yellow]Checking port {port}...[/yellow]")
    record = await builder.find_by_port(port)
    if record is None:
        console.print(f"[green]✓ Port {port} is free![/green]")
        return 0

    console.print(f"[bold cyan]Port {port} is in use:[/bold cyan]")
    console.print(f"[yellow]PID:[/yellow] {record.pid}")
    console.print(f"[yellow]Process:[/yellow] {escape(record.process_name)}")
    console.print(f"[yellow]Command:[/yellow] {escape(record.command or 'N/A')}")
    if record.full_command:
        console.print(f"[dim]Full command: {escape(record.full_command)}[/dim]")
    console.print(f"[dim]Tip: use [cyan]portio --kill {port}[/cyan] to free this port[/dim]")
    return 0


async def kill_mode(
    builder: RegistryBuilder,
    terminator: ProcessTerminator,
    port: int,
    force: bool,
    console: Console,
) -> int:
    """Kill the listener on a port, asking first unless forced."""
    record = await builder.find_by_port(port)
    if record is None:
        console.print(f"[green]✓ Port {port} is already free[/green]")
        return 0

    if not force:
        console.print(f"{escape(record.process_name)} (PID: {record.pid}) on port {port}")
        if not Confirm.ask("[red]Kill this process?[/red]", console=console):
            console.print("[yellow]Kill cancelled[/yellow]")
            return 0

    if await terminator.terminate(record.pid):
        console.print(f"[green]✓ Successfully killed process {record.pid} on port {port}[/green]")
        return 0
    console.print(f"[red]✗ Failed to kill process {record.pid}. Try running with elevated privileges.[/red]")
    return 1


def interactive_mode(settings: Settings, console: Console) -> int:
    """Run the TUI. Requires a terminal."""
    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        console.print("[yellow]⚠️  Interactive mode requires a TTY terminal.[/yellow]")
        console.print("[bold]Alternative options:[/bold]")
        console.print("  portio --list          # JSON output of all processes")
        console.print("  portio --check <port>  # What is on a specific port")
        console.print("  portio --kill <port>   # Kill the process on a specific port")
        return 1

    from portio.app import PortioApp

    PortioApp(settings=settings).run()
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for the portio command."""
    args = build_parser().parse_args(normalize_argv(sys.argv[1:] if argv is None else argv))
    settings = load_settings(
        include_all_ports=False if args.dev else None,
        backend=args.backend,
        log_file=args.log_file,
        log_level=args.log_level,
    )
    interactive = args.list is None and args.check is None and args.kill is None and args.mine is None
    console = Console(stderr=args.list is not None)

    try:
        setup_logging(settings.log_level, settings.log_file, tui=interactive)
        builder = RegistryBuilder(backend=settings.backend)
        terminator = ProcessTerminator()
        if args.list is not None:
            code = asyncio.run(list_mode(builder, None if args.list == -1 else args.list, settings.include_all_ports))
        elif args.check is not None:
            code = asyncio.run(check_mode(builder, args.check, console))
        elif args.mine is not None:
            code = asyncio.run(kill_mode(builder, terminator, args.mine, True, console))
        elif args.kill is not None:
            code = asyncio.run(kill_mode(builder, terminator, args.kill, args.force, console))
        else:
            code = interactive_mode(settings, console)
    except KeyboardInterrupt:
        code = 130
    except Exception:
        logger.exception("Fatal error")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
