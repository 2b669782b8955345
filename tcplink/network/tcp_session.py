"""
tcplink - TCP Socket Session

Owns exactly one raw TCP socket and exposes synchronous primitives for the
connection coordinator: connect, disconnect, send, receive and is_connected.

The session has no threads of its own. Every call may block for the
duration of a socket operation (connect handshake, sendall), so callers run
them from a worker thread, never from the UI thread.

Transport errors never escape this class:
  - connect/send failures are reported as False
  - close errors are swallowed (closing a broken socket is not an error)
  - a reset or orderly close seen by receive() tears the session down
"""

import logging
import select
import socket
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds
DEFAULT_CHUNK_SIZE = 1024  # bytes per recv()
LINE_TERMINATOR = "\n"


class SocketSession:
    """A single TCP connection with boolean-result primitives.

    Usage:
        session = SocketSession()
        if session.connect("127.0.0.1", 9000):
            session.send("hello")
            reply = session.receive()   # None when nothing is waiting
        session.disconnect()
    """

    def __init__(self, connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
                 chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._connect_timeout = connect_timeout
        self._chunk_size = chunk_size
        self._sock: Optional[socket.socket] = None
        self._connected = False
        self._peer: str = ""

    @property
    def peer(self) -> str:
        """``host:port`` of the current peer, or empty when disconnected."""
        return self._peer

    def connect(self, address: str, port: int) -> bool:
        """Open a connection to *address*:*port*, replacing any existing one.

        Returns True on success. Refused, unreachable, unresolvable and
        timed-out connects all return False and leave the session
        disconnected.
        """
        self.disconnect()

        try:
            sock = socket.create_connection(
                (address, port), timeout=self._connect_timeout,
            )
        except (OSError, ValueError, TypeError, OverflowError) as e:
            logger.info("Connect to %s:%s failed: %s", address, port, e)
            return False

        try:
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError as e:
            logger.debug("TCP_NODELAY not applied: %s", e)
        # The connect timeout stays on the socket as the write timeout so a
        # stalled peer cannot hang sendall() forever. Reads go through
        # select() and never wait on it.
        self._sock = sock
        self._connected = True
        self._peer = f"{address}:{port}"
        logger.info("Connected to %s", self._peer)
        return True

    def disconnect(self) -> None:
        """Close the socket. Safe to call repeatedly or after a failure."""
        sock = self._sock
        peer = self._peer
        try:
            if sock is not None:
                try:
                    sock.shutdown(socket.SHUT_RDWR)
                except OSError:
                    pass  # already reset or never fully connected
                try:
                    sock.close()
                except OSError as e:
                    logger.debug("Error closing socket to %s: %s", peer, e)
        finally:
            self._sock = None
            self._connected = False
            self._peer = ""
        if sock is not None:
            logger.info("Disconnected from %s", peer)

    def send(self, message: str) -> bool:
        """Write *message* plus a line terminator.

        Returns False when not connected or when the write fails. A failed
        write does not change the connection state; loss of the connection
        is detected by receive().
        """
        sock = self._sock
        if not self._connected or sock is None:
            return False

        data = (message + LINE_TERMINATOR).encode("utf-8")
        try:
            sock.sendall(data)
        except OSError as e:
            logger.warning("Send to %s failed: %s", self._peer, e)
            return False
        logger.debug("Sent %d bytes to %s", len(data), self._peer)
        return True

    def receive(self) -> Optional[str]:
        """Return whatever text is waiting on the socket, without blocking.

        Returns None when disconnected, when no bytes are available, or when
        the chunk carried nothing but a line terminator. A zero-byte read on
        a readable socket (orderly close by the peer) and a reset both
        disconnect the session before returning None.

        Each call returns at most one chunk of ``chunk_size`` bytes as-is,
        minus its trailing line terminator; there is no line framing.
        """
        sock = self._sock
        if not self._connected or sock is None:
            return None

        try:
            readable, _, _ = select.select([sock], [], [], 0)
            if not readable:
                return None
            data = sock.recv(self._chunk_size)
        except (ConnectionError, OSError, ValueError) as e:
            # ValueError: the socket was closed underneath select()
            logger.info("Connection to %s lost: %s", self._peer, e)
            self.disconnect()
            return None

        if not data:
            logger.info("Connection closed by peer %s", self._peer)
            self.disconnect()
            return None

        text = data.decode("utf-8", errors="replace").rstrip("\r\n")
        return text or None

    def is_connected(self) -> bool:
        """True only if the flag is set and the socket is present and open.

        The flag alone can lag the socket's real state, so all three are
        checked.
        """
        sock = self._sock
        return self._connected and sock is not None and sock.fileno() != -1
