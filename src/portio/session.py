"""Interactive session state machine for portio."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from portio.config import Settings
from portio.models import (
    AwaitingAdminRetry,
    Browsing,
    ConfirmMultiKill,
    ConfirmSingleKill,
    Filtering,
    ProcessRecord,
    SessionMode,
)
from portio.registry import RegistryBuilder, filter_records
from portio.terminator import ProcessTerminator
from portio.viewport import visible_height, visible_slice, window

logger = logging.getLogger(__name__)

QUIT_KEYS = ("q",)
CONFIRM_KEYS = ("enter",)
CANCEL_KEYS = ("escape",)


@dataclass(slots=True, frozen=True)
class KeyPressed:
    """A key press. ``character`` is set for printable keys."""

    key: str
    character: str | None = None


@dataclass(slots=True, frozen=True)
class Resize:
    """The terminal now has ``rows`` rows."""

    rows: int


@dataclass(slots=True, frozen=True)
class RefreshRequested:
    """Reload the registry, e.g. once a kill has settled."""


@dataclass(slots=True, frozen=True)
class EscalationStatus:
    """First escalation timer: the elevated kill should have run by now."""

    pid: int
    label: str


@dataclass(slots=True, frozen=True)
class EscalationVerify:
    """Second escalation timer: poll whether the process is gone."""

    pid: int
    label: str


SessionEvent = KeyPressed | Resize | RefreshRequested | EscalationStatus | EscalationVerify


@dataclass(slots=True)
class SessionState:
    """Mutable state of an interactive session."""

    mode: SessionMode = field(default_factory=Browsing)
    selected_index: int = 0
    selected_pids: set[int] = field(default_factory=set)
    filter_text: str = ""
    scroll_offset: int = 0
    message: str = ""
    include_all_ports: bool = True
    verbose: bool = False
    show_paths: bool = False
    loading: bool = False
    escalating: bool = False
    exited: bool = False


def _is_confirm(event: KeyPressed) -> bool:
    return event.key in CONFIRM_KEYS or event.character in ("y", "Y")


def _is_cancel(event: KeyPressed) -> bool:
    return event.key in CANCEL_KEYS or event.character in ("n", "N")


class SessionController:
    """
    Owns the session state and reacts to events one at a time.

    Events are queued with post() and consumed by run(). Discovery and kill
    calls are awaited inline, so no two events ever interleave. Timers used
    by the escalation flow post events back onto the queue and are never
    cancelled.
    """

    def __init__(
        self,
        builder: RegistryBuilder,
        terminator: ProcessTerminator,
        settings: Settings | None = None,
        listener: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the SessionController.

        Args:
            builder: Source of registry snapshots.
            terminator: Used for kills, elevated kills and existence polls.
            settings: Delays, viewport bounds and initial port mode.
            listener: Called after every handled event, e.g. to redraw.
        """
        self._builder = builder
        self._terminator = terminator
        self._settings = settings or Settings()
        self._listener = listener
        self._queue: asyncio.Queue[SessionEvent] = asyncio.Queue()
        self._processes: tuple[ProcessRecord, ...] = ()
        self._view: list[ProcessRecord] = []
        self._height = self._settings.max_visible_rows
        self._escalations = 0
        self.state = SessionState(include_all_ports=self._settings.include_all_ports)

    @property
    def processes(self) -> tuple[ProcessRecord, ...]:
        """The current registry snapshot."""
        return self._processes

    @property
    def view(self) -> list[ProcessRecord]:
        """The snapshot with the current filter applied."""
        return self._view

    @property
    def height(self) -> int:
        return self._height

    @property
    def visible_rows(self) -> list[ProcessRecord]:
        return list(visible_slice(self._view, self.state.scroll_offset, self._height))

    @property
    def highlighted(self) -> ProcessRecord | None:
        if not self._view:
            return None
        return self._view[self.state.selected_index]

    def set_listener(self, listener: Callable[[], None] | None) -> None:
        self._listener = listener

    def shutdown(self) -> None:
        """Stop background work started by the session."""
        self._terminator.cancel_pending()

    def post(self, event: SessionEvent) -> None:
        """Queue an event for run()."""
        self._queue.put_nowait(event)

    def wants_quit(self, event: KeyPressed) -> bool:
        """Whether a key press ends the session without waiting for queued events."""
        if event.key == "ctrl+c":
            return True
        # Queued keys may still leave browsing mode, so q waits its turn
        return self._queue.empty() and isinstance(self.state.mode, Browsing) and event.character in QUIT_KEYS

    async def run(self) -> None:
        """Load the registry, then handle queued events until quit."""
        await self.refresh()
        self._notify()
        while not self.state.exited:
            event = await self._queue.get()
            await self.dispatch(event)

    async def process_pending(self) -> None:
        """Handle every event already queued."""
        while not self._queue.empty():
            await self.dispatch(self._queue.get_nowait())

    async def dispatch(self, event: SessionEvent) -> None:
        """Handle one event."""
        if isinstance(event, KeyPressed):
            await self._on_key(event)
        elif isinstance(event, Resize):
            self._height = visible_height(
                event.rows, self._settings.min_visible_rows, self._settings.max_visible_rows
            )
            self._scroll_to_selection()
        elif isinstance(event, RefreshRequested):
            await self.refresh()
        elif isinstance(event, EscalationStatus):
            self.state.message = f"Checking if {event.label} was terminated..."
        elif isinstance(event, EscalationVerify):
            await self._verify_escalation(event.pid, event.label)
        self._notify()

    async def refresh(self) -> None:
        """Rebuild the registry and recompute the view against it."""
        self.state.loading = True
        self._notify()
        records = await self._builder.build_registry(self.state.include_all_ports)
        self.state.loading = False
        self.apply_snapshot(records)

    def apply_snapshot(self, records: tuple[ProcessRecord, ...]) -> None:
        """Replace the snapshot; the selection is kept only when no filter is active."""
        self._processes = tuple(records)
        present = {record.pid for record in self._processes}
        self.state.selected_pids &= present
        self._view = filter_records(self._processes, self.state.filter_text)
        if self.state.filter_text:
            self.state.selected_index = 0
            self.state.scroll_offset = 0
        else:
            self.state.selected_index = self._clamp(self.state.selected_index)
        self._scroll_to_selection()

    def _notify(self) -> None:
        if self._listener is not None:
            self._listener()

    def _clamp(self, index: int) -> int:
        return max(0, min(index, len(self._view) - 1))

    def _scroll_to_selection(self) -> None:
        self.state.scroll_offset = window(
            len(self._view), self.state.selected_index, self._height, self.state.scroll_offset
        )

    def _label(self, pid: int) -> str:
        for record in self._processes:
            if record.pid == pid:
                return record.process_name
        return f"process {pid}"

    def _display_order(self, pids: set[int]) -> tuple[int, ...]:
        ordered = list(dict.fromkeys(r.pid for r in self._processes if r.pid in pids))
        ordered.extend(sorted(pids - set(ordered)))
        return tuple(ordered)

    def _schedule(self, delay: float, event: SessionEvent) -> None:
        asyncio.get_running_loop().call_later(delay, self.post, event)

    async def _on_key(self, event: KeyPressed) -> None:
        mode = self.state.mode
        if isinstance(mode, AwaitingAdminRetry):
            if event.character in ("a", "A"):
                await self._start_escalation(mode.pid)
            elif _is_cancel(event):
                self.state.mode = Browsing()
                self.state.message = ""
        elif isinstance(mode, ConfirmSingleKill | ConfirmMultiKill):
            if _is_confirm(event):
                self.state.mode = Browsing()
                if isinstance(mode, ConfirmSingleKill):
                    await self._kill_single(mode.pid)
                else:
                    await self._kill_many(mode.pids)
            elif _is_cancel(event):
                self.state.mode = Browsing()
                self.state.message = "Kill cancelled"
        elif isinstance(mode, Filtering):
            self._on_filter_key(event)
        else:
            await self._on_browse_key(event)

    def _on_filter_key(self, event: KeyPressed) -> None:
        if event.key == "escape":
            self.state.mode = Browsing()
            self._set_filter("")
        elif event.key == "enter":
            self.state.mode = Browsing()
        elif event.key == "backspace":
            self._set_filter(self.state.filter_text[:-1])
        elif event.character and event.character.isprintable():
            self._set_filter(self.state.filter_text + event.character)

    def _set_filter(self, text: str) -> None:
        self.state.filter_text = text
        self._view = filter_records(self._processes, text)
        self.state.selected_index = 0
        self.state.scroll_offset = 0

    async def _on_browse_key(self, event: KeyPressed) -> None:
        key, char = event.key, event.character
        state = self.state

        if key == "ctrl+c" or char in QUIT_KEYS:
            state.exited = True
        elif char == "/":
            state.mode = Filtering()
            state.message = ""
        elif char == "c":
            state.filter_text = ""
            self._view = list(self._processes)
            state.selected_index = self._clamp(state.selected_index)
            self._scroll_to_selection()
            state.message = "Filter cleared"
        elif char == "r":
            state.message = "Refreshing..."
            await self.refresh()
        elif char == "d":
            state.include_all_ports = not state.include_all_ports
            state.message = "Showing all ports" if state.include_all_ports else "Showing dev ports only"
            await self.refresh()
        elif char == "v":
            state.verbose = not state.verbose
            state.message = "Verbose mode on" if state.verbose else "Verbose mode off"
        elif char == "p":
            state.show_paths = not state.show_paths
            state.message = "Showing full paths" if state.show_paths else "Showing file names"
        elif key == "space":
            self._toggle_selection()
        elif key == "up" or char == "k":
            self._move_to(state.selected_index - 1)
        elif key == "down" or char == "j":
            self._move_to(state.selected_index + 1)
        elif key == "pageup":
            self._move_to(state.selected_index - self._height)
        elif key == "pagedown":
            self._move_to(state.selected_index + self._height)
        elif key == "home":
            self._move_to(0)
        elif key == "end":
            self._move_to(len(self._view) - 1)
        elif key == "enter" or char == "x":
            self._request_kill()

    def _move_to(self, index: int) -> None:
        self.state.selected_index = self._clamp(index)
        self._scroll_to_selection()

    def _toggle_selection(self) -> None:
        record = self.highlighted
        if record is None:
            return
        if record.pid in self.state.selected_pids:
            self.state.selected_pids.discard(record.pid)
        else:
            self.state.selected_pids.add(record.pid)
        self.state.message = f"{len(self.state.selected_pids)} selected"

    def _request_kill(self) -> None:
        if self.state.selected_pids:
            pids = self._display_order(self.state.selected_pids)
            self.state.mode = ConfirmMultiKill(pids)
            self.state.message = f"Kill {len(pids)} selected processes? Enter to confirm, Esc to cancel"
            return
        record = self.highlighted
        if record is None:
            return
        self.state.mode = ConfirmSingleKill(record.pid)
        self.state.message = (
            f"Kill {record.process_name} (PID: {record.pid}) on port {record.port}? "
            "Enter to confirm, Esc to cancel"
        )

    async def _kill_single(self, pid: int) -> None:
        label = self._label(pid)
        if await self._terminator.terminate(pid):
            self.state.selected_pids.discard(pid)
            self.state.message = f"Successfully killed {label}"
            self._schedule(self._settings.settle_delay, RefreshRequested())
        else:
            self.state.mode = AwaitingAdminRetry(pid)
            self.state.message = (
                f"Failed to kill {label}. Press A to retry with admin privileges, Esc to cancel"
            )

    async def _kill_many(self, pids: tuple[int, ...]) -> None:
        killed: list[int] = []
        failed: list[int] = []
        for pid in pids:
            if await self._terminator.terminate(pid):
                killed.append(pid)
            else:
                failed.append(pid)

        self.state.selected_pids.difference_update(killed)
        if not self._settings.keep_failed_selected:
            self.state.selected_pids.difference_update(failed)

        failed_labels = ", ".join(f"{self._label(pid)} ({pid})" for pid in failed)
        if not failed:
            self.state.message = f"Successfully killed {len(killed)} processes"
        elif not killed:
            self.state.message = f"Failed to kill {len(failed)} processes: {failed_labels}"
        else:
            self.state.message = f"Killed {len(killed)} of {len(pids)} processes; failed: {failed_labels}"

        if killed:
            self._schedule(self._settings.settle_delay, RefreshRequested())

    async def _start_escalation(self, pid: int) -> None:
        label = self._label(pid)
        self._escalations += 1
        # No limit on repeated retries; each one launches another elevated process
        logger.info("Elevated kill attempt %d for pid %d", self._escalations, pid)
        self.state.mode = Browsing()
        self.state.escalating = True
        self.state.message = f"Launching elevated kill... Approve the prompt to kill {label}"
        await self._terminator.terminate_elevated(pid, label)
        self._schedule(self._settings.escalation_status_delay, EscalationStatus(pid, label))
        self._schedule(self._settings.escalation_verify_delay, EscalationVerify(pid, label))

    async def _verify_escalation(self, pid: int, label: str) -> None:
        still_exists = await self._terminator.exists(pid)
        self.state.escalating = False
        if still_exists:
            logger.warning("Elevated kill unconfirmed: pid %d still exists", pid)
            self.state.message = (
                f"Admin kill failed. {label} may be protected by the system "
                "or the prompt was cancelled."
            )
            return
        self.state.message = f"Admin kill successful! {label} (PID: {pid}) has been terminated."
        await self.refresh()
