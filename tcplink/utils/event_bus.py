"""Thread-safe publish-subscribe bus for connection lifecycle events.

The coordinator publishes an event for every connect, disconnect, loss,
send and receive. The terminal front end and diagnostics consume them
without holding a reference to the coordinator's internals.

Events are informational only: the authoritative state lives in
``ConnectionState``. Publishing never changes coordinator behaviour.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Event categories for subscription filtering."""
    CONNECTED = "connection.connected"
    CONNECT_FAILED = "connection.failed"
    CLOSED = "connection.closed"
    LOST = "connection.lost"
    MESSAGE_SENT = "message.sent"
    SEND_FAILED = "message.send_failed"
    MESSAGE_RECEIVED = "message.received"


@dataclass
class ConnectionEvent:
    """A lifecycle event about the single TCP connection."""
    event_type: EventType
    address: str = ""
    port: int = 0
    timestamp: float = field(default_factory=time.time)
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        return f"{self.address}:{self.port}" if self.address else ""

    @classmethod
    def connected(cls, address: str, port: int) -> "ConnectionEvent":
        return cls(EventType.CONNECTED, address, port)

    @classmethod
    def connect_failed(cls, address: str, port: int) -> "ConnectionEvent":
        return cls(EventType.CONNECT_FAILED, address, port)

    @classmethod
    def closed(cls, address: str, port: int) -> "ConnectionEvent":
        return cls(EventType.CLOSED, address, port)

    @classmethod
    def lost(cls, address: str, port: int, reason: str = "") -> "ConnectionEvent":
        return cls(EventType.LOST, address, port, data={"reason": reason})

    @classmethod
    def message_sent(cls, address: str, port: int,
                     message: str) -> "ConnectionEvent":
        return cls(EventType.MESSAGE_SENT, address, port,
                   data={"message": message})

    @classmethod
    def send_failed(cls, address: str, port: int,
                    message: str) -> "ConnectionEvent":
        return cls(EventType.SEND_FAILED, address, port,
                   data={"message": message})

    @classmethod
    def message_received(cls, address: str, port: int,
                         message: str) -> "ConnectionEvent":
        return cls(EventType.MESSAGE_RECEIVED, address, port,
                   data={"message": message})


# Type alias for subscriber callbacks
Subscriber = Callable[[ConnectionEvent], None]


class EventBus:
    """Publish-subscribe bus; callbacks run in the publisher's thread.

    Usage:
        bus = EventBus()
        bus.subscribe(EventType.LOST, on_lost)
        bus.subscribe(None, log_everything)     # wildcard
        bus.publish(ConnectionEvent.lost("127.0.0.1", 9000))
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # None key holds wildcard subscribers
        self._subscribers: Dict[Optional[EventType], Set[Subscriber]] = {}
        self._published = 0
        self._delivered = 0
        self._errors = 0

    def subscribe(self, event_type: Optional[EventType],
                  callback: Subscriber) -> None:
        """Register a callback for an event type (or None for all events)."""
        with self._lock:
            self._subscribers.setdefault(event_type, set()).add(callback)

    def unsubscribe(self, event_type: Optional[EventType],
                    callback: Subscriber) -> None:
        with self._lock:
            subs = self._subscribers.get(event_type)
            if subs:
                subs.discard(callback)
                if not subs:
                    del self._subscribers[event_type]

    def publish(self, event: ConnectionEvent) -> None:
        """Deliver *event* to its type's subscribers and to wildcards."""
        with self._lock:
            targets: List[Subscriber] = list(self._subscribers.get(event.event_type, ()))
            targets.extend(self._subscribers.get(None, ()))
            self._published += 1

        for callback in targets:
            try:
                callback(event)
            except Exception:
                with self._lock:
                    self._errors += 1
                logger.exception(
                    "Event bus subscriber %s failed on %s",
                    getattr(callback, "__name__", repr(callback)),
                    event.event_type.value,
                )
            else:
                with self._lock:
                    self._delivered += 1

    @property
    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "total_published": self._published,
                "total_delivered": self._delivered,
                "total_errors": self._errors,
            }
