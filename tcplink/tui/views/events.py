"""Events view: connection lifecycle events from the event bus, newest first."""

import curses
from typing import Any, List, Tuple

from ...utils.event_bus import ConnectionEvent, EventType
from ..helpers import (
    CP_CONNECTED,
    CP_DISCONNECTED,
    CP_HIGHLIGHT,
    CP_RECEIVED,
    CP_SENT,
    CP_WARNING,
    _format_ts,
    one_line,
    safe_addstr,
)


def _event_color(event_type: EventType) -> int:
    mapping = {
        EventType.CONNECTED: CP_CONNECTED,
        EventType.CONNECT_FAILED: CP_DISCONNECTED,
        EventType.CLOSED: CP_WARNING,
        EventType.LOST: CP_DISCONNECTED,
        EventType.MESSAGE_SENT: CP_SENT,
        EventType.SEND_FAILED: CP_WARNING,
        EventType.MESSAGE_RECEIVED: CP_RECEIVED,
    }
    return curses.color_pair(mapping.get(event_type, 0))


def format_event(event: ConnectionEvent) -> str:
    detail = event.data.get("message") or event.data.get("reason") or ""
    return (f"  {_format_ts(event.timestamp):<10}{event.event_type.value:<22}"
            f"{event.target:<22}{one_line(detail)}")


def draw_events(win: Any, top: int, height: int, cols: int,
                events: List[ConnectionEvent], scroll: int) -> int:
    """Render the Events view. Returns the clamped scroll offset."""
    lines: List[Tuple[str, int]] = []
    lines.append(("", 0))
    lines.append((f" EVENTS ({len(events)})", curses.A_BOLD | curses.A_UNDERLINE))
    lines.append(("", 0))

    if not events:
        lines.append(("  No events yet.", curses.A_DIM))
    else:
        header = f"  {'Time':<10}{'Type':<22}{'Target':<22}Detail"
        lines.append((header, curses.color_pair(CP_HIGHLIGHT)))
        for event in reversed(events):
            lines.append((format_event(event), _event_color(event.event_type)))

    max_scroll = max(0, len(lines) - height)
    scroll = min(max(0, scroll), max_scroll)
    for i, (text, attr) in enumerate(lines[scroll:scroll + height]):
        safe_addstr(win, top + i, 0, text, attr, cols)
    return scroll
