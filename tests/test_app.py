"""Tests for the portio application."""

import pytest
from fakes import FakeBuilder, FakeTerminator
from textual.widgets import DataTable, Static

from portio.app import PortioApp, ProcessTable, format_command, port_style, process_style
from portio.models import ConfirmSingleKill, Filtering, ProcessRecord
from portio.session import SessionController


def make_app(records, settings, terminator=None) -> PortioApp:
    controller = SessionController(FakeBuilder(records), terminator or FakeTerminator(), settings)
    return PortioApp(controller=controller)


async def wait_for(pilot, predicate, attempts: int = 100) -> None:
    """Pause until the session worker has caught up."""
    for _ in range(attempts):
        if predicate():
            return
        await pilot.pause(0.01)
    raise AssertionError("condition not reached")


def test_port_style_ranges():
    """Test port colors by range."""
    assert port_style(80) != port_style(3000)
    assert port_style(3000) == port_style(9999)
    assert port_style(50000) != port_style(3000)
    assert port_style(1024) != port_style(3000)


def test_process_style():
    """Test process colors by runtime."""
    assert process_style("node") == process_style("npm")
    assert process_style("Python3") != "white"
    assert process_style("sshd") == "white"


class TestFormatCommand:
    """Tests for the command column text."""

    def test_label_by_default(self, two_records):
        """Test the label is shown by default."""
        assert format_command(two_records[0], verbose=False, show_paths=False) == "node server.js"

    def test_verbose_strips_paths(self, two_records):
        """Test verbose mode shows the full command with file names only."""
        assert format_command(two_records[0], verbose=True, show_paths=False) == "node server.js"

    def test_verbose_with_paths(self, two_records):
        """Test verbose mode with paths shows the full command unchanged."""
        text = format_command(two_records[0], verbose=True, show_paths=True)
        assert text == "/usr/bin/node /srv/app/server.js"

    def test_verbose_without_full_command(self, two_records):
        """Test verbose mode falls back to the label."""
        assert format_command(two_records[1], verbose=True, show_paths=True) == "python3 -m http.server"


@pytest.mark.asyncio
async def test_app_creation(fast_settings):
    """Test PortioApp can be instantiated."""
    app = make_app((), fast_settings)
    assert app.title == "portio"
    assert app.controller is not None


@pytest.mark.asyncio
async def test_app_compose(two_records, fast_settings):
    """Test PortioApp composes and loads the registry."""
    app = make_app(two_records, fast_settings)
    async with app.run_test() as pilot:
        assert pilot.app.query_one("#status") is not None
        assert pilot.app.query_one(ProcessTable) is not None

        table = pilot.app.query_one("#process-table", DataTable)
        await wait_for(pilot, lambda: table.row_count == 2)
        assert not table.can_focus


@pytest.mark.asyncio
async def test_app_empty_registry(fast_settings):
    """Test the empty message replaces the table."""
    app = make_app((), fast_settings)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: not app.controller.state.loading and app.controller.processes == ())
        await pilot.pause()
        assert pilot.app.query_one("#empty-message", Static).display
        assert not pilot.app.query_one("#process-table", DataTable).display


@pytest.mark.asyncio
async def test_app_quit_binding(two_records, fast_settings):
    """Test that 'q' quits."""
    app = make_app(two_records, fast_settings)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: len(app.controller.processes) == 2)
        await pilot.press("q")
        await wait_for(pilot, lambda: app.controller.state.exited)
        assert pilot.app._exit
        assert app.controller.state.exited


@pytest.mark.asyncio
async def test_app_filter_keys(two_records, fast_settings):
    """Test typed keys reach the filter."""
    app = make_app(two_records, fast_settings)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: len(app.controller.processes) == 2)

        await pilot.press("slash", "3", "0")
        await wait_for(pilot, lambda: app.controller.state.filter_text == "30")

        assert isinstance(app.controller.state.mode, Filtering)
        assert [r.pid for r in app.controller.view] == [100]

        # 'q' is filter text here, not quit
        await pilot.press("q")
        await wait_for(pilot, lambda: app.controller.state.filter_text == "30q")
        assert not pilot.app._exit


@pytest.mark.asyncio
async def test_app_kill_flow(two_records, fast_settings):
    """Test navigating and confirming a kill."""
    terminator = FakeTerminator()
    app = make_app(two_records, fast_settings, terminator)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: len(app.controller.processes) == 2)

        await pilot.press("down", "enter")
        await wait_for(pilot, lambda: app.controller.state.mode == ConfirmSingleKill(200))

        await pilot.press("enter")
        await wait_for(pilot, lambda: terminator.killed == [200])
        assert "Successfully killed python3" in app.controller.state.message


@pytest.mark.asyncio
async def test_app_marks_selection(fast_settings):
    """Test selected rows are marked in the table."""
    records = (ProcessRecord(pid=7, port=5173, process_name="node", command="vite"),)
    app = make_app(records, fast_settings)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: len(app.controller.processes) == 1)

        await pilot.press("space")
        await wait_for(pilot, lambda: app.controller.state.selected_pids == {7})

        table = pilot.app.query_one("#process-table", DataTable)
        await wait_for(pilot, lambda: table.get_cell("5173-7", "mark") == "●")


@pytest.mark.asyncio
async def test_app_exit_cancels_background_kills(two_records, fast_settings):
    """Test leaving the app cancels pending elevated kills."""
    terminator = FakeTerminator()
    app = make_app(two_records, fast_settings, terminator)
    async with app.run_test() as pilot:
        await wait_for(pilot, lambda: len(app.controller.processes) == 2)
    assert terminator.cancelled
