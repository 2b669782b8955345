"""Pickup view: keypad entry of a four-digit pickup code."""

import curses
from typing import Any, List, Tuple

from ...utils.pickup import PickupCodeEntry
from ..helpers import CP_HIGHLIGHT, CP_WARNING, connection_color, safe_addstr

KEYPAD_ROWS = (
    ("1", "2", "3"),
    ("4", "5", "6"),
    ("7", "8", "9"),
    ("c", "0", "<"),
)


def can_confirm(entry: PickupCodeEntry, connected: bool) -> bool:
    """The confirm action is only available with a full code and a connection."""
    return entry.is_complete and connected


def draw_pickup(win: Any, top: int, height: int, cols: int,
                entry: PickupCodeEntry, connected: bool) -> None:
    """Render the pickup-code view."""
    lines: List[Tuple[str, int]] = []
    lines.append(("", 0))
    lines.append((" ENTER PICKUP CODE", curses.A_BOLD | curses.A_UNDERLINE))
    lines.append(("", 0))

    boxes = " ".join(f"[{ch}]" for ch in entry.masked(" "))
    lines.append((f"    {boxes}", curses.A_BOLD))
    lines.append(("", 0))

    for row in KEYPAD_ROWS:
        lines.append(("    " + "   ".join(f" {k} " for k in row), 0))
    lines.append(("", 0))
    lines.append(("    digits: enter   <Backspace>: delete   c: clear", curses.A_DIM))

    if can_confirm(entry, connected):
        lines.append(("    <Enter>: CONFIRM", curses.color_pair(CP_HIGHLIGHT) | curses.A_BOLD))
    elif not connected:
        lines.append(("    Not connected. Press Tab for the console to connect.",
                      curses.color_pair(CP_WARNING)))
    else:
        lines.append(("    Enter all four digits to confirm.", curses.A_DIM))

    lines.append(("", 0))
    state = "CONNECTED" if connected else "DISCONNECTED"
    lines.append((f"    Link: {state}", connection_color(connected)))

    for i, (text, attr) in enumerate(lines[:height]):
        safe_addstr(win, top + i, 0, text, attr, cols)
