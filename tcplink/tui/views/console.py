"""Console view: server target, connect/disconnect, compose and message log."""

import curses
from typing import Any, List, Optional, Sequence, Tuple

from ..helpers import (
    CP_HIGHLIGHT,
    CP_RECEIVED,
    CP_SENT,
    connection_color,
    one_line,
    safe_addstr,
)

RECEIVED = "received"
SENT = "sent"


def build_message_rows(received: Sequence[str],
                       sent: Sequence[str]) -> List[Tuple[str, str]]:
    """Interleave the two logs as (direction, message) pairs.

    The logs carry no timestamps, so entries alternate received/sent by
    position until one log runs out.
    """
    rows: List[Tuple[str, str]] = []
    for i in range(max(len(received), len(sent))):
        if i < len(received):
            rows.append((RECEIVED, received[i]))
        if i < len(sent):
            rows.append((SENT, sent[i]))
    return rows


def draw_console(win: Any, top: int, height: int, cols: int,
                 address: str, port_text: str, connected: bool,
                 draft: str, edit_field: Optional[str], edit_buffer: str,
                 received: Sequence[str], sent: Sequence[str],
                 scroll: int) -> int:
    """Render the console view. Returns the clamped scroll offset."""
    def field_text(name: str, value: str) -> str:
        return f"{edit_buffer}_" if edit_field == name else value

    edit_attr = curses.color_pair(CP_HIGHLIGHT)

    safe_addstr(win, top + 1, 0, " SERVER", curses.A_BOLD | curses.A_UNDERLINE)
    safe_addstr(win, top + 2, 2, "Address: ")
    safe_addstr(win, top + 2, 11, field_text("address", address),
                edit_attr if edit_field == "address" else curses.A_BOLD)
    safe_addstr(win, top + 2, 40, "[a] edit", curses.A_DIM)
    safe_addstr(win, top + 3, 2, "Port:    ")
    safe_addstr(win, top + 3, 11, field_text("port", port_text),
                edit_attr if edit_field == "port" else curses.A_BOLD)
    safe_addstr(win, top + 3, 40, "[p] edit", curses.A_DIM)

    action = "[c] Disconnect" if connected else "[c] Connect"
    safe_addstr(win, top + 4, 2, action, connection_color(connected) | curses.A_BOLD)
    safe_addstr(win, top + 4, 20, "[x] Clear messages", curses.A_DIM)

    safe_addstr(win, top + 6, 0, " MESSAGE", curses.A_BOLD | curses.A_UNDERLINE)
    safe_addstr(win, top + 7, 2, "> ")
    if edit_field == "message":
        safe_addstr(win, top + 7, 4, f"{edit_buffer}_", edit_attr)
    else:
        safe_addstr(win, top + 7, 4, draft or "[i] compose, Enter to send",
                    0 if draft else curses.A_DIM)

    rows = build_message_rows(received, sent)
    safe_addstr(win, top + 9, 0, f" MESSAGES ({len(rows)})",
                curses.A_BOLD | curses.A_UNDERLINE)

    log_top = top + 10
    log_height = height - 10
    if log_height <= 0:
        return scroll
    if not rows:
        safe_addstr(win, log_top, 2, "No messages yet.", curses.A_DIM)
        return 0

    max_scroll = max(0, len(rows) - log_height)
    scroll = min(max(0, scroll), max_scroll)
    for i, (direction, message) in enumerate(rows[scroll:scroll + log_height]):
        if direction == RECEIVED:
            prefix, attr = "<- ", curses.color_pair(CP_RECEIVED)
        else:
            prefix, attr = "-> ", curses.color_pair(CP_SENT)
        safe_addstr(win, log_top + i, 2, prefix + one_line(message), attr, cols - 2)
    return scroll
