"""portio - Main Textual application."""

import os

from rich.markup import escape
from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.css.query import NoMatches
from textual.widgets import DataTable, Static

from portio import __version__
from portio.config import Settings
from portio.models import AwaitingAdminRetry, ConfirmMultiKill, ConfirmSingleKill, Filtering, ProcessRecord
from portio.registry import RegistryBuilder
from portio.session import KeyPressed, Resize, SessionController
from portio.terminator import ProcessTerminator


def port_style(port: int) -> str:
    """Rich style for a port, by range."""
    if port < 1024:
        return "bold #FF6B6B"  # System
    if 3000 <= port < 10000:
        return "bold #4ECDC4"  # Development
    if port >= 49152:
        return "bold #95E77E"  # Ephemeral
    return "bold #FFE66D"  # Registered


def process_style(name: str) -> str:
    """Rich style for a process name, by runtime."""
    lowered = name.lower()
    if "node" in lowered or "npm" in lowered:
        return "#68D391"
    if "python" in lowered:
        return "#4B8BBE"
    if "java" in lowered:
        return "#F89820"
    if "docker" in lowered:
        return "#2496ED"
    return "white"


def format_command(record: ProcessRecord, verbose: bool, show_paths: bool) -> str:
    """
    Text for the command column.

    Verbose mode shows the full command line. Unless paths are requested,
    path-like tokens are reduced to their file names.
    """
    text = (record.full_command or record.command) if verbose else record.command
    if show_paths:
        return text
    return " ".join(os.path.basename(token) if "/" in token or "\\" in token else token for token in text.split())


class StatusBar(Static):
    """Port mode and match count, or the filter prompt while filtering."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        margin-bottom: 1;
    }
    """

    def show(self, controller: SessionController) -> None:
        state = controller.state
        if state.loading:
            self.update("[cyan]⟳ Scanning ports...[/cyan]")
        elif isinstance(state.mode, Filtering):
            self.update(f"[yellow]🔍[/yellow] {escape(state.filter_text)}[reverse] [/reverse]")
        else:
            mode = "[bold magenta]● All Ports[/]" if state.include_all_ports else "[bold cyan]● Dev Only[/]"
            text = f"[dim]Mode:[/dim] {mode} [dim]│ Found:[/dim] [bold yellow]{len(controller.view)}[/] [dim]processes[/dim]"
            if state.filter_text:
                text += f" [dim]│ Filter:[/dim] {escape(state.filter_text)}"
            if state.selected_pids:
                text += f" [dim]│ Selected:[/dim] [bold]{len(state.selected_pids)}[/]"
            self.update(text)


class ProcessTable(Container):
    """Container for the visible slice of the process list."""

    DEFAULT_CSS = """
    ProcessTable {
        height: auto;
        max-height: 20;
        border: round $primary;
    }
    """

    def compose(self) -> ComposeResult:
        """Compose the process table."""
        table = DataTable(id="process-table")
        # Keys are routed to the session, never to the table
        table.can_focus = False
        yield table
        yield Static(id="empty-message")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#process-table", DataTable)
        table.cursor_type = "row"

        table.add_column("#", key="index", width=4)
        table.add_column("", key="mark", width=1)
        table.add_column("PID", key="pid", width=8)
        table.add_column("Port", key="port", width=6)
        table.add_column("Process", key="process", width=16)
        table.add_column("Command", key="command")

    def show(self, controller: SessionController) -> None:
        """Redraw the rows visible in the viewport."""
        table = self.query_one("#process-table", DataTable)
        empty = self.query_one("#empty-message", Static)
        state = controller.state

        table.clear()
        if not controller.view:
            table.display = False
            empty.display = True
            if state.filter_text:
                empty.update(f"❌ No matches for \"{escape(state.filter_text)}\"")
            else:
                empty.update("📭 No processes found on listening ports")
            return

        table.display = True
        empty.display = False
        for offset, record in enumerate(controller.visible_rows):
            index = state.scroll_offset + offset
            table.add_row(
                str(index + 1),
                "●" if record.pid in state.selected_pids else "",
                f"[#A78BFA]{record.pid}[/]",
                f"[{port_style(record.port)}]{record.port}[/]",
                f"[{process_style(record.process_name)}]{escape(record.process_name)}[/]",
                escape(format_command(record, state.verbose, state.show_paths)),
                key=f"{record.port}-{record.pid}",
            )
        table.move_cursor(row=state.selected_index - state.scroll_offset)


class PortioApp(App):
    """Main portio application."""

    TITLE = "portio"
    SUB_TITLE = "Port Process Manager"
    AUTO_FOCUS = None
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        layout: vertical;
        padding: 0 1;
    }

    #title {
        height: 2;
    }

    #message {
        height: auto;
        margin-top: 1;
    }

    #help {
        height: auto;
        margin-top: 1;
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", show=False, priority=True),
    ]

    def __init__(self, controller: SessionController | None = None, settings: Settings | None = None) -> None:
        """Initialize the PortioApp."""
        super().__init__()
        settings = settings or Settings()
        self._controller = controller or SessionController(
            RegistryBuilder(backend=settings.backend),
            ProcessTerminator(),
            settings,
        )

    @property
    def controller(self) -> SessionController:
        return self._controller

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield Static(
            f"[bold #4ECDC4]⚡ portio[/] [dim]- Port Process Manager[/dim] [magenta]v{__version__}[/]",
            id="title",
        )
        yield StatusBar(id="status")
        yield ProcessTable()
        yield Static(id="message")
        yield Static(id="help")

    def on_mount(self) -> None:
        """Start the session once the app is mounted."""
        self._controller.set_listener(self._render_state)
        self._controller.post(Resize(self.size.height))
        self.run_worker(self._run_session(), name="session", exclusive=True)

    async def _run_session(self) -> None:
        await self._controller.run()
        self.exit()

    def on_unmount(self) -> None:
        self._controller.shutdown()

    def on_key(self, event: events.Key) -> None:
        """Route every key press to the session."""
        key = KeyPressed(event.key, event.character if event.is_printable else None)
        event.stop()
        event.prevent_default()
        if self._controller.wants_quit(key):
            # Quit even while a scan or kill is still pending
            self.action_quit()
            return
        self._controller.post(key)

    def on_resize(self, event: events.Resize) -> None:
        self._controller.post(Resize(event.size.height))

    def _render_state(self) -> None:
        """Redraw every widget from the session state."""
        state = self._controller.state
        try:
            self.query_one(StatusBar).show(self._controller)
            self.query_one(ProcessTable).show(self._controller)
            self.query_one("#message", Static).update(escape(state.message))
            self.query_one("#help", Static).update(self._help_text())
        except NoMatches:
            pass  # Not mounted yet

    def _help_text(self) -> str:
        state = self._controller.state
        if isinstance(state.mode, AwaitingAdminRetry):
            return "[bold red]⚠️  Admin Required:[/] [bold yellow]A[/] elevated kill  [bold]Esc[/] cancel"
        if isinstance(state.mode, ConfirmSingleKill | ConfirmMultiKill):
            return "[bold yellow]⚠️  Confirm Kill:[/] [bold green]Enter[/] confirm  [bold red]Esc[/] cancel"
        if isinstance(state.mode, Filtering):
            return "[bold]Enter[/] keep filter  [bold]Esc[/] clear filter"
        text = (
            "[bold cyan]↑↓[/] nav  [bold red]⏎[/] kill  [bold]space[/] select  [bold yellow]/[/] search  "
            "[bold green]r[/] refresh  [bold magenta]d[/] dev/all  [bold blue]v[/] verbose  "
            "[bold]p[/] paths  [bold]c[/] clear  [bold]q[/] quit"
        )
        if state.escalating:
            text = "[yellow]⏳ Waiting for admin action...[/]\n" + text
        return text

    def action_quit(self) -> None:
        """Handle quit action."""
        self._controller.state.exited = True
        self.exit()

