"""
tcplink - Connection Coordinator

Drives one SocketSession on behalf of the UI and mirrors everything that
happens into a ConnectionState.

Threading model:
  - Commands (connect, disconnect, send, clear_messages) return at once.
    Their work runs on a single worker thread, so commands take effect in
    the order they were issued. Each returns a Future the caller may wait
    on but never has to.
  - The receive loop runs on its own daemon thread, started after a
    successful connect. It polls the socket without blocking and waits on
    its stop event between polls, so stopping it takes at most one poll
    interval.
  - Every connect and disconnect stops the current receive loop (signal,
    then join) before touching the session. At most one loop exists.
  - Socket calls from the worker and the receive loop are serialized by
    an I/O lock held only for the duration of one session call.

Failures never propagate to callers. They show up as the status message
and the connected flag.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from ..utils.event_bus import ConnectionEvent, EventBus
from .connection_state import ConnectionState, FieldView
from .tcp_session import DEFAULT_CHUNK_SIZE, DEFAULT_CONNECT_TIMEOUT, SocketSession

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.05  # seconds between receive polls
RECEIVE_JOIN_TIMEOUT = 5.0  # seconds to wait for the receive loop to exit

STATUS_SENDING = "sending message..."
STATUS_SENT = "message sent"
STATUS_SEND_FAILED = "send failed"
STATUS_RECEIVED = "message received"
STATUS_LOST = "connection lost"


class ConnectionPhase(str, Enum):
    """Where the coordinator is in the connection lifecycle."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


def _completed(result: Any) -> Future:
    """A Future that is already resolved with *result*."""
    future: Future = Future()
    future.set_result(result)
    return future


def is_blank(message: Optional[str]) -> bool:
    return not message or not message.strip()


class ConnectionCoordinator:
    """Owns the socket session, the receive loop and the observable state.

    Usage:
        coordinator = ConnectionCoordinator()
        coordinator.status_message.subscribe(render_status)
        coordinator.connect("127.0.0.1", 9000)
        coordinator.send("hello")
        ...
        coordinator.release()
    """

    def __init__(self,
                 session: Optional[SocketSession] = None,
                 state: Optional[ConnectionState] = None,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 event_bus: Optional[EventBus] = None) -> None:
        self._session = session if session is not None else SocketSession()
        self._state = state if state is not None else ConnectionState()
        self._poll_interval = poll_interval
        self._event_bus = event_bus

        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="tcplink-worker",
        )
        self._submit_lock = threading.RLock()
        self._released = False

        self._io_lock = threading.Lock()
        self._receive_lock = threading.Lock()
        self._receive_thread: Optional[threading.Thread] = None
        self._receive_stop: Optional[threading.Event] = None

        self._phase = ConnectionPhase.DISCONNECTED
        self._phase_lock = threading.Lock()
        self._connected_target: Tuple[str, int] = ("", 0)
        self._stats = _CoordinatorStats()

        self._views = {f.name: f.read_only() for f in self._state.fields()}

    @classmethod
    def from_config(cls, config: Any,
                    event_bus: Optional[EventBus] = None) -> "ConnectionCoordinator":
        """Build a coordinator from a ClientConfig-like ``get()`` source."""
        session = SocketSession(
            connect_timeout=float(config.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
            chunk_size=int(config.get("receive_chunk_size", DEFAULT_CHUNK_SIZE)),
        )
        return cls(
            session=session,
            poll_interval=float(config.get("poll_interval", DEFAULT_POLL_INTERVAL)),
            event_bus=event_bus,
        )

    # ------------------------------------------------------------------
    # Commands (called from any thread, return immediately)
    # ------------------------------------------------------------------

    def connect(self, address: str, port: int) -> Future:
        """Connect to *address*:*port*, replacing any current connection.

        The target and a progress status are recorded before this returns.
        The Future resolves to True if the connection was established.
        """
        def record_target() -> None:
            self._state.set_server_info(address, port)
            self._state.update_status_message(f"connecting to {address}:{port}...")

        return self._submit(self._do_connect, address, port, before=record_target)

    def disconnect(self) -> Future:
        """Stop receiving and close the connection. Idempotent."""
        return self._submit(self._do_disconnect)

    def send(self, message: str) -> Future:
        """Send one line. Blank messages are dropped without any effect."""
        if is_blank(message):
            return _completed(False)
        return self._submit(self._do_send, message)

    def clear_messages(self) -> Future:
        """Empty both message logs. The connection is not touched."""
        return self._submit(self._do_clear)

    def release(self) -> None:
        """Disconnect and shut down the worker. The coordinator is unusable after.

        Commands issued before release() still run first, in order.
        Calling release() again does nothing.
        """
        with self._submit_lock:
            if self._released:
                return
            self._released = True
            self._executor.submit(self._run_command, self._do_disconnect)
        self._executor.shutdown(wait=True)
        # A loop that exited on its own may still be finishing its cleanup
        self._stop_receiving()
        logger.info("Connection coordinator released")

    # ------------------------------------------------------------------
    # Observation (read-only)
    # ------------------------------------------------------------------

    @property
    def connected(self) -> FieldView:
        return self._views["connected"]

    @property
    def server_address(self) -> FieldView:
        return self._views["server_address"]

    @property
    def server_port(self) -> FieldView:
        return self._views["server_port"]

    @property
    def received_messages(self) -> FieldView:
        return self._views["received_messages"]

    @property
    def sent_messages(self) -> FieldView:
        return self._views["sent_messages"]

    @property
    def status_message(self) -> FieldView:
        return self._views["status_message"]

    def state_snapshot(self) -> Dict[str, Any]:
        return self._state.snapshot()

    @property
    def phase(self) -> ConnectionPhase:
        with self._phase_lock:
            return self._phase

    @property
    def released(self) -> bool:
        with self._submit_lock:
            return self._released

    @property
    def receive_loop_active(self) -> bool:
        with self._receive_lock:
            thread = self._receive_thread
        return thread is not None and thread.is_alive()

    @property
    def stats(self) -> Dict[str, Any]:
        data = self._stats.as_dict()
        data["phase"] = self.phase.value
        data["released"] = self.released
        return data

    # ------------------------------------------------------------------
    # Worker-side command bodies
    # ------------------------------------------------------------------

    def _submit(self, fn: Callable[..., Any], *args: Any,
                before: Optional[Callable[[], None]] = None) -> Future:
        with self._submit_lock:
            if self._released:
                logger.warning("Coordinator released, ignoring %s",
                               fn.__name__.lstrip("_"))
                return _completed(False)
            if before is not None:
                before()
            return self._executor.submit(self._run_command, fn, *args)

    def _run_command(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except Exception as e:
            logger.exception("Command %s failed", fn.__name__)
            self._state.update_status_message(f"error: {e}")
            return False

    def _do_connect(self, address: str, port: int) -> bool:
        self._set_phase(ConnectionPhase.CONNECTING)
        self._stop_receiving()
        # A later connect() may have recorded its own target already
        self._state.set_server_info(address, port)
        self._stats.inc("connect_attempts")

        with self._io_lock:
            connected = self._session.connect(address, port)

        # Flag and status carry this attempt's target, not the latest request
        if not connected:
            self._state.update_connection_state(
                False, address, port,
                status=f"connection to {address}:{port} failed")
            self._set_phase(ConnectionPhase.DISCONNECTED)
            self._publish(ConnectionEvent.connect_failed(address, port))
            return False

        self._state.update_connection_state(True, address, port)
        self._set_active_target(address, port)
        self._set_phase(ConnectionPhase.CONNECTED)
        self._stats.inc("connects")
        self._publish(ConnectionEvent.connected(address, port))
        self._start_receiving(address, port)
        return True

    def _do_disconnect(self) -> bool:
        self._set_phase(ConnectionPhase.DISCONNECTING)
        self._stop_receiving()

        with self._io_lock:
            was_connected = self._session.is_connected()
            self._session.disconnect()

        self._state.update_connection_state(False)
        self._set_phase(ConnectionPhase.DISCONNECTED)
        if was_connected:
            address, port = self._active_target()
            self._publish(ConnectionEvent.closed(address, port))
        return True

    def _do_send(self, message: str) -> bool:
        self._state.update_status_message(STATUS_SENDING)
        with self._io_lock:
            ok = self._session.send(message)

        address, port = self._active_target()
        if ok:
            self._state.append_sent_message(message)
            self._state.update_status_message(STATUS_SENT)
            self._stats.inc("messages_sent")
            self._publish(ConnectionEvent.message_sent(address, port, message))
        else:
            self._state.update_status_message(STATUS_SEND_FAILED)
            self._stats.inc("send_failures")
            self._publish(ConnectionEvent.send_failed(address, port, message))
        return ok

    def _do_clear(self) -> bool:
        self._state.clear_messages()
        return True

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    def _start_receiving(self, address: str, port: int) -> None:
        stop = threading.Event()
        thread = threading.Thread(
            target=self._receive_loop,
            args=(stop, address, port),
            name="tcplink-receive",
            daemon=True,
        )
        with self._receive_lock:
            self._receive_thread = thread
            self._receive_stop = stop
        self._stats.inc("receive_loops_started")
        thread.start()

    def _stop_receiving(self) -> None:
        """Signal the receive loop and wait until it is no longer running."""
        with self._receive_lock:
            thread = self._receive_thread
            stop = self._receive_stop
            self._receive_thread = None
            self._receive_stop = None

        if stop is not None:
            stop.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=RECEIVE_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning("Receive loop did not exit within %.1fs",
                               RECEIVE_JOIN_TIMEOUT)

    def _receive_loop(self, stop: threading.Event, address: str, port: int) -> None:
        self._stats.loop_entered()
        logger.debug("Receive loop started for %s:%s", address, port)
        try:
            while not stop.is_set():
                with self._io_lock:
                    if not self._session.is_connected():
                        break
                    message = self._session.receive()
                    still_connected = self._session.is_connected()

                if message:
                    self._state.append_received_message(message)
                    self._state.update_status_message(STATUS_RECEIVED)
                    self._stats.inc("messages_received")
                    self._publish(ConnectionEvent.message_received(address, port, message))
                elif not still_connected:
                    break

                if stop.wait(self._poll_interval):
                    break
        except Exception as e:
            logger.exception("Receive loop for %s:%s failed", address, port)
            self._state.update_status_message(f"receive error: {e}")
        finally:
            self._stats.loop_exited()
            self._cleanup_if_lost(address, port)
            logger.debug("Receive loop stopped for %s:%s", address, port)

    def _cleanup_if_lost(self, address: str, port: int) -> None:
        """Tear down after a loop exit if the session dropped underneath it."""
        with self._io_lock:
            lost = not self._session.is_connected()
            if lost:
                self._session.disconnect()
        if not lost:
            return

        self._state.update_connection_state(False, status=STATUS_LOST)
        self._set_phase(ConnectionPhase.DISCONNECTED)
        self._stats.inc("connections_lost")
        self._publish(ConnectionEvent.lost(address, port, reason="receive loop"))
        logger.info("Connection to %s:%s lost", address, port)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _active_target(self) -> Tuple[str, int]:
        """Target of the last successful connect (not a pending request)."""
        with self._phase_lock:
            return self._connected_target

    def _set_active_target(self, address: str, port: int) -> None:
        with self._phase_lock:
            self._connected_target = (address, port)

    def _set_phase(self, phase: ConnectionPhase) -> None:
        with self._phase_lock:
            self._phase = phase

    def _publish(self, event: ConnectionEvent) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)


class _CoordinatorStats:
    """Thread-safe counters for coordinator diagnostics."""

    _COUNTERS = (
        "connect_attempts",
        "connects",
        "messages_sent",
        "send_failures",
        "messages_received",
        "receive_loops_started",
        "connections_lost",
    )

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self._COUNTERS}
        self._active_loops = 0
        self._max_active_loops = 0

    def inc(self, name: str) -> None:
        with self._lock:
            self._counts[name] += 1

    def loop_entered(self) -> None:
        with self._lock:
            self._active_loops += 1
            self._max_active_loops = max(self._max_active_loops, self._active_loops)

    def loop_exited(self) -> None:
        with self._lock:
            self._active_loops -= 1

    def as_dict(self) -> Dict[str, Any]:
        with self._lock:
            data: Dict[str, Any] = dict(self._counts)
            data["active_receive_loops"] = self._active_loops
            data["max_active_receive_loops"] = self._max_active_loops
        return data
