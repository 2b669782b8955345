"""Shared helpers for the tcplink TUI.

Color constants, safe drawing utilities, and timestamp formatting used
across all view modules.
"""

import curses
import time
from typing import Any


# ── Color pair IDs ────────────────────────────────────────────────

CP_NORMAL = 0
CP_HEADER = 1
CP_STATUS_BAR = 2
CP_TAB_ACTIVE = 3
CP_TAB_INACTIVE = 4
CP_CONNECTED = 5
CP_DISCONNECTED = 6
CP_RECEIVED = 7
CP_SENT = 8
CP_HIGHLIGHT = 9
CP_WARNING = 10


def _init_colors() -> None:
    """Set up curses color pairs."""
    curses.start_color()
    curses.use_default_colors()

    curses.init_pair(CP_HEADER, curses.COLOR_WHITE, curses.COLOR_BLUE)
    curses.init_pair(CP_STATUS_BAR, curses.COLOR_BLACK, curses.COLOR_WHITE)
    curses.init_pair(CP_TAB_ACTIVE, curses.COLOR_WHITE, curses.COLOR_BLUE)
    curses.init_pair(CP_TAB_INACTIVE, curses.COLOR_CYAN, -1)
    curses.init_pair(CP_CONNECTED, curses.COLOR_GREEN, -1)
    curses.init_pair(CP_DISCONNECTED, curses.COLOR_RED, -1)
    curses.init_pair(CP_RECEIVED, curses.COLOR_CYAN, -1)
    curses.init_pair(CP_SENT, curses.COLOR_GREEN, -1)
    curses.init_pair(CP_HIGHLIGHT, curses.COLOR_BLACK, curses.COLOR_CYAN)
    curses.init_pair(CP_WARNING, curses.COLOR_YELLOW, -1)


def connection_color(connected: bool) -> int:
    """Map the connected flag to a color pair."""
    return curses.color_pair(CP_CONNECTED if connected else CP_DISCONNECTED)


def safe_addstr(win: Any, y: int, x: int, text: str,
                attr: int = 0, max_width: int = 0) -> None:
    """Write text to curses window, clipping to avoid curses errors."""
    rows, cols = win.getmaxyx()
    if y < 0 or y >= rows or x >= cols:
        return
    available = cols - x - 1  # keep off the bottom-right corner
    if max_width > 0:
        available = min(available, max_width)
    if available <= 0:
        return
    try:
        win.addstr(y, x, text[:available], attr)
    except curses.error:
        pass


def _format_ts(ts: float) -> str:
    """Format a unix timestamp as HH:MM:SS."""
    if not ts:
        return "--:--:--"
    try:
        return time.strftime("%H:%M:%S", time.localtime(ts))
    except (OSError, ValueError, OverflowError):
        return "??:??:??"


def one_line(text: str) -> str:
    """Collapse line breaks so a multi-line chunk fits on one row."""
    return text.replace("\r", "").replace("\n", " | ")
