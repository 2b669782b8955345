"""Observable connection state shared between the coordinator and the UI.

Each field is an ``ObservableField``: a lock-guarded, versioned value with
push notification. Writers replace the whole value under the field lock,
so a reader always sees either the old or the new value and never a
partially applied update. Message logs are stored as tuples for the same
reason.

Subscribers are called synchronously in the writer's thread, outside the
lock. Each callback is wrapped in try/except so one bad subscriber never
breaks the writer or the other subscribers.

Usage:
    state = ConnectionState()
    unsubscribe = state.status_message.subscribe(print)
    state.set_server_info("127.0.0.1", 9000)
    state.update_connection_state(True)   # prints "connected to 127.0.0.1:9000"
    unsubscribe()
"""

import logging
import threading
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Type alias for field subscriber callbacks
FieldSubscriber = Callable[[Any], None]

INITIAL_STATUS = "not connected"
STATUS_DISCONNECTED = "disconnected"


class _Subscription:
    """One subscriber plus the newest version it has been handed."""

    __slots__ = ("callback", "lock", "version")

    def __init__(self, callback: FieldSubscriber) -> None:
        self.callback = callback
        self.lock = threading.RLock()
        self.version = -1


class ObservableField(Generic[T]):
    """Thread-safe value holder with subscription (latest value wins).

    Every delivery carries the version it was read at. A subscriber is never
    handed a version older than one it has already seen, so its last
    callback always reflects the newest value delivered to it. Callbacks
    must not block on another thread that writes the same field.
    """

    def __init__(self, name: str, initial: T) -> None:
        self._name = name
        self._value: T = initial
        self._version = 0
        self._cond = threading.Condition(threading.Lock())
        self._subscribers: List[_Subscription] = []
        self._sub_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def value(self) -> T:
        with self._cond:
            return self._value

    @property
    def version(self) -> int:
        """Number of times the value has been set."""
        with self._cond:
            return self._version

    def set(self, value: T) -> None:
        """Replace the value and notify subscribers."""
        with self._cond:
            self._value = value
            self._version += 1
            version = self._version
            self._cond.notify_all()
        self._notify(value, version)

    def update(self, fn: Callable[[T], T]) -> T:
        """Atomically replace the value with ``fn(current)``.

        Returns the new value.
        """
        with self._cond:
            value = fn(self._value)
            self._value = value
            self._version += 1
            version = self._version
            self._cond.notify_all()
        self._notify(value, version)
        return value

    def subscribe(self, callback: FieldSubscriber) -> Callable[[], None]:
        """Register *callback* and call it with the current value.

        Returns a function that removes the subscription.
        """
        sub = _Subscription(callback)
        with self._sub_lock:
            self._subscribers.append(sub)
        # Read after registering: a concurrent set() either lands in this
        # read or is delivered by _notify with a newer version.
        with self._cond:
            value, version = self._value, self._version
        self._deliver(sub, value, version)

        def unsubscribe() -> None:
            with self._sub_lock:
                if sub in self._subscribers:
                    self._subscribers.remove(sub)

        return unsubscribe

    def wait_for(self, predicate: Callable[[T], bool],
                 timeout: Optional[float] = None) -> bool:
        """Block until ``predicate(value)`` holds or *timeout* expires."""
        with self._cond:
            return self._cond.wait_for(lambda: predicate(self._value), timeout)

    def read_only(self) -> "FieldView[T]":
        return FieldView(self)

    def _notify(self, value: T, version: int) -> None:
        with self._sub_lock:
            targets = list(self._subscribers)
        for sub in targets:
            self._deliver(sub, value, version)

    def _deliver(self, sub: _Subscription, value: T, version: int) -> None:
        """Hand *value* to one subscriber unless it already saw a newer one."""
        with sub.lock:
            if version <= sub.version:
                return
            sub.version = version
            self._safe_call(sub.callback, value)

    def _safe_call(self, callback: FieldSubscriber, value: Any) -> None:
        """Call a subscriber, catching and logging any exception."""
        try:
            callback(value)
        except Exception:
            logger.exception(
                "Subscriber %s failed on field %s",
                getattr(callback, "__name__", repr(callback)),
                self._name,
            )

    def __repr__(self) -> str:
        return f"ObservableField({self._name}={self.value!r})"


class FieldView(Generic[T]):
    """Read-only face of an ObservableField handed to collaborators."""

    def __init__(self, field: ObservableField[T]) -> None:
        self._field = field

    @property
    def name(self) -> str:
        return self._field.name

    @property
    def value(self) -> T:
        return self._field.value

    @property
    def version(self) -> int:
        return self._field.version

    def subscribe(self, callback: FieldSubscriber) -> Callable[[], None]:
        return self._field.subscribe(callback)

    def wait_for(self, predicate: Callable[[T], bool],
                 timeout: Optional[float] = None) -> bool:
        return self._field.wait_for(predicate, timeout)

    def __repr__(self) -> str:
        return f"FieldView({self.name}={self.value!r})"


class ConnectionState:
    """Connection flag, server target, message logs and status text.

    Only the coordinator mutates this object; everyone else reads or
    subscribes through ``FieldView``s.
    """

    def __init__(self) -> None:
        self.connected: ObservableField[bool] = ObservableField("connected", False)
        self.server_address: ObservableField[str] = ObservableField("server_address", "")
        self.server_port: ObservableField[int] = ObservableField("server_port", 0)
        self.received_messages: ObservableField[Tuple[str, ...]] = ObservableField(
            "received_messages", ())
        self.sent_messages: ObservableField[Tuple[str, ...]] = ObservableField(
            "sent_messages", ())
        self.status_message: ObservableField[str] = ObservableField(
            "status_message", INITIAL_STATUS)
        # Serializes compound mutations (e.g. flag + derived status) so a
        # snapshot never mixes halves of two updates.
        self._write_lock = threading.RLock()

    def set_server_info(self, address: str, port: int) -> None:
        with self._write_lock:
            self.server_address.set(address)
            self.server_port.set(port)

    def update_connection_state(self, connected: bool,
                                address: Optional[str] = None,
                                port: Optional[int] = None,
                                status: Optional[str] = None) -> None:
        """Set the connected flag and the status text in one mutation.

        *address*/*port*, when given, replace the recorded target first, so
        the flag and the target it refers to change together. *status*
        overrides the derived ``"connected to A:P"`` / ``"disconnected"``
        summary.
        """
        with self._write_lock:
            if address is not None and port is not None:
                self.server_address.set(address)
                self.server_port.set(port)
            self.connected.set(connected)
            if status is None:
                if connected:
                    status = (f"connected to {self.server_address.value}"
                              f":{self.server_port.value}")
                else:
                    status = STATUS_DISCONNECTED
            self.status_message.set(status)

    def append_received_message(self, message: str) -> None:
        with self._write_lock:
            self.received_messages.update(lambda msgs: msgs + (message,))

    def append_sent_message(self, message: str) -> None:
        with self._write_lock:
            self.sent_messages.update(lambda msgs: msgs + (message,))

    def update_status_message(self, text: str) -> None:
        with self._write_lock:
            self.status_message.set(text)

    def clear_messages(self) -> None:
        """Empty both message logs; connection fields are left alone."""
        with self._write_lock:
            self.received_messages.set(())
            self.sent_messages.set(())

    def fields(self) -> Tuple[ObservableField, ...]:
        return (self.connected, self.server_address, self.server_port,
                self.received_messages, self.sent_messages,
                self.status_message)

    def snapshot(self) -> Dict[str, Any]:
        """Consistent copy of every field value."""
        with self._write_lock:
            return {f.name: f.value for f in self.fields()}
