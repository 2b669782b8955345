"""tcplink TUI - Core Application

Curses-based terminal front end for the connection coordinator. Uses only
Python stdlib (curses). The app never touches the socket: it issues
commands to the coordinator and redraws when a subscribed field changes.

Views:
  Pickup   - keypad entry of a 4-digit pickup code, sent as PICKUP:<code>
  Console  - server address/port, connect/disconnect, compose, message log
  Events   - connection lifecycle events from the event bus
"""

import curses
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from ..network.connection_coordinator import ConnectionCoordinator
from ..utils.config import DEFAULT_CONFIG, ClientConfig
from ..utils.event_bus import ConnectionEvent, EventBus
from ..utils.pickup import PickupCodeEntry
from .helpers import (
    CP_HEADER,
    CP_STATUS_BAR,
    CP_TAB_ACTIVE,
    _init_colors,
    safe_addstr,
)
from .views.console import draw_console
from .views.events import draw_events
from .views.pickup import can_confirm, draw_pickup

logger = logging.getLogger(__name__)

# Input timeout; also the longest a state change waits to be drawn (ms)
INPUT_TIMEOUT_MS = 100

KEY_ESCAPE = 27
KEY_TAB = ord("\t")
ENTER_KEYS = (curses.KEY_ENTER, ord("\n"), ord("\r"))
BACKSPACE_KEYS = (curses.KEY_BACKSPACE, 127, 8)


class TuiApp:
    """Main TUI application controller."""

    VIEW_NAMES = ["Pickup", "Console", "Events"]

    def __init__(self, coordinator: ConnectionCoordinator,
                 config: Optional[ClientConfig] = None,
                 event_bus: Optional[EventBus] = None):
        self._coordinator = coordinator
        self._config = config
        self._event_bus = event_bus
        self._running = False
        self._stdscr: Any = None

        start_view = self._setting("start_view")
        self._active_view = 1 if start_view == "console" else 0

        self._address: str = str(self._setting("server_address"))
        self._port_text: str = str(self._setting("server_port"))
        self._draft = ""
        self._pickup = PickupCodeEntry()

        # Inline editor: None, "address", "port" or "message"
        self._edit_field: Optional[str] = None
        self._edit_buffer = ""

        self._scroll: Dict[int, int] = {i: 0 for i in range(len(self.VIEW_NAMES))}

        # Redraw request, set from coordinator threads via subscriptions
        self._dirty = threading.Event()
        self._dirty.set()
        self._unsubscribers: List[Callable[[], None]] = []

        # Event log ring buffer (for Events view)
        self._data_lock = threading.Lock()
        self._event_log: List[ConnectionEvent] = []
        self._event_log_max = 500

    def _setting(self, key: str) -> Any:
        if self._config is not None:
            return self._config.get(key, DEFAULT_CONFIG[key])
        return DEFAULT_CONFIG[key]

    # ── Lifecycle ─────────────────────────────────────────────────

    def run(self) -> None:
        """Launch the TUI (blocks until quit)."""
        curses.wrapper(self._main)

    def _main(self, stdscr: Any) -> None:
        self._stdscr = stdscr
        _init_colors()
        try:
            curses.curs_set(0)
        except curses.error:
            pass  # terminal cannot hide the cursor
        stdscr.timeout(INPUT_TIMEOUT_MS)

        self.attach()
        self._running = True
        try:
            while self._running:
                if self._dirty.is_set():
                    self._dirty.clear()
                    self._draw()
                self._handle_input()
        finally:
            self.detach()
            self.shutdown()

    def attach(self) -> None:
        """Subscribe to coordinator fields and the event bus."""
        c = self._coordinator
        for view in (c.connected, c.server_address, c.server_port,
                     c.received_messages, c.sent_messages, c.status_message):
            self._unsubscribers.append(view.subscribe(self._on_state_change))
        if self._event_bus is not None:
            self._event_bus.subscribe(None, self._on_event)

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        if self._event_bus is not None:
            self._event_bus.unsubscribe(None, self._on_event)

    def shutdown(self) -> None:
        """Release the coordinator and persist the last server target."""
        self._coordinator.release()
        if self._config is not None:
            self._config.save()

    def _on_state_change(self, _value: Any) -> None:
        self._dirty.set()

    def _on_event(self, event: ConnectionEvent) -> None:
        with self._data_lock:
            self._event_log.append(event)
            if len(self._event_log) > self._event_log_max:
                self._event_log = self._event_log[-self._event_log_max:]
        self._dirty.set()

    # ── Commands ──────────────────────────────────────────────────

    def _port_value(self) -> int:
        fallback = int(self._setting("server_port"))
        try:
            port = int(self._port_text)
        except ValueError:
            return fallback
        if not 1 <= port <= 65535:
            return fallback
        return port

    def _toggle_connection(self) -> None:
        if self._coordinator.connected.value:
            self._coordinator.disconnect()
            return
        address = self._address.strip()
        if not address:
            return
        port = self._port_value()
        self._port_text = str(port)
        logger.info("Connecting to %s:%d", address, port)
        self._coordinator.connect(address, port)
        if self._config is not None:
            self._config.remember_server(address, port)

    def _confirm_pickup(self) -> None:
        if not can_confirm(self._pickup, self._coordinator.connected.value):
            return
        message = self._pickup.message()
        if message:
            self._coordinator.send(message)

    def _commit_edit(self) -> None:
        field, text = self._edit_field, self._edit_buffer
        self._edit_field = None
        self._edit_buffer = ""
        if field == "address":
            self._address = text.strip() or self._address
        elif field == "port":
            if text.strip().isdigit():
                self._port_text = text.strip()
        elif field == "message":
            self._draft = ""
            self._coordinator.send(text)

    # ── Input ─────────────────────────────────────────────────────

    def _handle_input(self) -> None:
        """Process keyboard input."""
        try:
            key = self._stdscr.getch()
        except curses.error:
            return
        if key == -1:
            return
        self.handle_key(key)
        self._dirty.set()

    def handle_key(self, key: int) -> None:
        # ── Inline editor ──
        if self._edit_field is not None:
            if key == KEY_ESCAPE:
                if self._edit_field == "message":
                    self._draft = self._edit_buffer
                self._edit_field = None
                self._edit_buffer = ""
            elif key in ENTER_KEYS:
                self._commit_edit()
            elif key in BACKSPACE_KEYS:
                self._edit_buffer = self._edit_buffer[:-1]
            elif 32 <= key <= 126:
                self._edit_buffer += chr(key)
            return

        if key in (ord("q"), ord("Q")):
            self._running = False
            return

        # View switching
        if key == KEY_TAB or key == curses.KEY_RIGHT:
            self._active_view = (self._active_view + 1) % len(self.VIEW_NAMES)
            return
        if key == curses.KEY_BTAB or key == curses.KEY_LEFT:
            self._active_view = (self._active_view - 1) % len(self.VIEW_NAMES)
            return

        if self._active_view == 0:
            self._handle_pickup_key(key)
        elif self._active_view == 1:
            self._handle_console_key(key)
        else:
            self._handle_scroll_key(key)

    def _handle_pickup_key(self, key: int) -> None:
        if ord("0") <= key <= ord("9"):
            self._pickup.press(chr(key))
        elif key in BACKSPACE_KEYS or key == ord("<"):
            self._pickup.backspace()
        elif key in (ord("c"), ord("C")):
            self._pickup.clear()
        elif key in ENTER_KEYS:
            self._confirm_pickup()

    def _handle_console_key(self, key: int) -> None:
        if key == ord("a"):
            self._edit_field, self._edit_buffer = "address", self._address
        elif key == ord("p"):
            self._edit_field, self._edit_buffer = "port", self._port_text
        elif key in (ord("i"), *ENTER_KEYS):
            self._edit_field, self._edit_buffer = "message", self._draft
        elif key == ord("c"):
            self._toggle_connection()
        elif key == ord("x"):
            self._coordinator.clear_messages()
        else:
            self._handle_scroll_key(key)

    def _handle_scroll_key(self, key: int) -> None:
        view = self._active_view
        if key == curses.KEY_DOWN or key == ord("j"):
            self._scroll[view] += 1
        elif key == curses.KEY_UP or key == ord("k"):
            self._scroll[view] = max(0, self._scroll[view] - 1)
        elif key == curses.KEY_NPAGE:
            self._scroll[view] += 20
        elif key == curses.KEY_PPAGE:
            self._scroll[view] = max(0, self._scroll[view] - 20)
        elif key == curses.KEY_HOME or key == ord("g"):
            self._scroll[view] = 0

    # ── Drawing ───────────────────────────────────────────────────

    def _draw(self) -> None:
        """Render the full TUI frame."""
        self._stdscr.erase()
        rows, cols = self._stdscr.getmaxyx()
        if rows < 8 or cols < 60:
            safe_addstr(self._stdscr, 0, 0, "Terminal too small")
            self._stdscr.refresh()
            return

        self._draw_header(cols)
        self._draw_status_bar(rows, cols)

        top = 1
        height = rows - 2
        connected = bool(self._coordinator.connected.value)
        view = self._active_view
        if view == 0:
            draw_pickup(self._stdscr, top, height, cols, self._pickup, connected)
        elif view == 1:
            self._scroll[1] = draw_console(
                self._stdscr, top, height, cols,
                self._address, self._port_text, connected,
                self._draft, self._edit_field, self._edit_buffer,
                self._coordinator.received_messages.value,
                self._coordinator.sent_messages.value,
                self._scroll[1])
        else:
            with self._data_lock:
                events = list(self._event_log)
            self._scroll[2] = draw_events(self._stdscr, top, height, cols,
                                          events, self._scroll[2])

        self._stdscr.refresh()

    def _draw_header(self, cols: int) -> None:
        """Draw the top header bar with view selectors."""
        attr = curses.color_pair(CP_HEADER) | curses.A_BOLD
        safe_addstr(self._stdscr, 0, 0, " " * cols, attr)
        safe_addstr(self._stdscr, 0, 1, "tcplink", attr)

        x = 12
        for i, name in enumerate(self.VIEW_NAMES):
            label = f" {name} "
            if i == self._active_view:
                ta = curses.color_pair(CP_TAB_ACTIVE) | curses.A_BOLD | curses.A_REVERSE
            else:
                ta = curses.color_pair(CP_HEADER)
            safe_addstr(self._stdscr, 0, x, label, ta)
            x += len(label) + 1

    def _draw_status_bar(self, rows: int, cols: int) -> None:
        """Draw the bottom status bar."""
        attr = curses.color_pair(CP_STATUS_BAR)
        y = rows - 1
        safe_addstr(self._stdscr, y, 0, " " * cols, attr)

        connected = bool(self._coordinator.connected.value)
        label = "CONNECTED" if connected else "DISCONNECTED"
        safe_addstr(self._stdscr, y, 1, label, attr | curses.A_BOLD)
        safe_addstr(self._stdscr, y, len(label) + 3,
                    str(self._coordinator.status_message.value), attr)

        hint = "q:Quit  Tab:View"
        safe_addstr(self._stdscr, y, cols - len(hint) - 2, hint, attr)


def run_tui(coordinator: ConnectionCoordinator,
            config: Optional[ClientConfig] = None,
            event_bus: Optional[EventBus] = None) -> None:
    """Entry point for launching the TUI."""
    app = TuiApp(coordinator, config, event_bus)
    app.run()
