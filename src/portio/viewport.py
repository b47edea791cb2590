"""Viewport math for the scrolling process list."""

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")

MIN_VISIBLE_ROWS = 5
MAX_VISIBLE_ROWS = 15
HEADER_LINES = 10  # Title, mode bar and table header
FOOTER_LINES = 4  # Message and key help


def visible_height(
    terminal_rows: int,
    min_rows: int = MIN_VISIBLE_ROWS,
    max_rows: int = MAX_VISIBLE_ROWS,
) -> int:
    """Number of table rows that fit in a terminal of the given height."""
    return max(min_rows, min(max_rows, terminal_rows - HEADER_LINES - FOOTER_LINES))


def window(length: int, selected: int, height: int, current_offset: int) -> int:
    """
    Return the scroll offset that keeps the selected row visible.

    Scrolls up when the selection is above the window and down when it is
    below; otherwise the offset is unchanged. ``length`` is accepted for
    callers that track it but does not affect the result.
    """
    if selected < current_offset:
        return selected
    if selected >= current_offset + height:
        return selected - height + 1
    return current_offset


def visible_slice(items: Sequence[T], offset: int, height: int) -> Sequence[T]:
    """The rows shown for a given offset and height."""
    return items[offset : offset + height]
