"""Logging setup for the TUI and the one-shot modes."""

import logging
from logging.handlers import RotatingFileHandler

from rich.console import Console
from rich.logging import RichHandler
from textual.logging import TextualHandler


def setup_logging(level: int | str = logging.WARNING, log_file: str | None = None, tui: bool = False) -> None:
    """
    Configure root logging.

    While the TUI owns the terminal, records go to Textual's devtools console
    instead of stderr. One-shot modes log to stderr through rich. A log file,
    when given, receives plain text records in both cases.
    """
    handlers: list[logging.Handler] = []
    if tui:
        handlers.append(TextualHandler())
    else:
        handlers.append(RichHandler(console=Console(stderr=True), show_path=False))

    if log_file:
        file_handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))
        handlers.append(file_handler)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logging.basicConfig(level=level, handlers=handlers, format="%(message)s", force=True)
