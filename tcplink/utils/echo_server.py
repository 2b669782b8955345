"""Line echo server for trying the client without real hardware.

Every line a client sends is written straight back to it. Runs
``serve_forever`` in a background thread so it can be started from tests
and from ``tcplink --echo-server``.

Usage:
    server = EchoServer(port=0)     # 0 = pick a free port
    port = server.start()
    ...
    server.close_clients()          # simulate the peer hanging up
    server.stop()
"""

import logging
import socket
import socketserver
import threading
from typing import Optional, Set

logger = logging.getLogger(__name__)


class _EchoHandler(socketserver.StreamRequestHandler):
    """Echo each received line back to the same client."""

    server: "_EchoTCPServer"

    def setup(self) -> None:
        super().setup()
        self.server.track(self.request)

    def handle(self) -> None:
        peer = "%s:%s" % self.client_address[:2]
        logger.debug("Echo client connected: %s", peer)
        try:
            for line in self.rfile:
                self.wfile.write(line)
                self.wfile.flush()
                self.server.record_echo()
        except OSError as e:
            logger.debug("Echo client %s dropped: %s", peer, e)
        logger.debug("Echo client disconnected: %s", peer)

    def finish(self) -> None:
        self.server.untrack(self.request)
        try:
            super().finish()
        except (OSError, ValueError):
            pass  # client already gone


class _EchoTCPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True

    def __init__(self, address, handler) -> None:
        super().__init__(address, handler)
        self._clients: Set[socket.socket] = set()
        self._clients_lock = threading.Lock()
        self._echoed = 0

    def track(self, sock: socket.socket) -> None:
        with self._clients_lock:
            self._clients.add(sock)

    def untrack(self, sock: socket.socket) -> None:
        with self._clients_lock:
            self._clients.discard(sock)

    def record_echo(self) -> None:
        with self._clients_lock:
            self._echoed += 1

    def drop_clients(self) -> int:
        with self._clients_lock:
            clients = list(self._clients)
            self._clients.clear()
        for sock in clients:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                sock.close()
            except OSError:
                pass
        return len(clients)

    @property
    def client_count(self) -> int:
        with self._clients_lock:
            return len(self._clients)

    @property
    def lines_echoed(self) -> int:
        with self._clients_lock:
            return self._echoed


class EchoServer:
    """Threaded line echo server bound to *host*:*port*."""

    def __init__(self, host: str = "127.0.0.1", port: int = 0) -> None:
        self.host = host
        self.port = port
        self._server: Optional[_EchoTCPServer] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> int:
        """Bind and start serving. Returns the bound port."""
        if self._server is not None:
            return self.port
        self._server = _EchoTCPServer((self.host, self.port), _EchoHandler)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="tcplink-echo-server",
            daemon=True,
        )
        self._thread.start()
        logger.info("Echo server listening on %s:%d", self.host, self.port)
        return self.port

    def stop(self) -> None:
        """Stop serving and close every client connection."""
        server = self._server
        if server is None:
            return
        server.shutdown()
        server.drop_clients()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=3.0)
            if self._thread.is_alive():
                logger.warning("Echo server thread did not exit within 3s")
        self._server = None
        self._thread = None
        logger.info("Echo server on port %d stopped", self.port)

    def close_clients(self) -> int:
        """Hang up on every connected client. Returns how many were closed."""
        if self._server is None:
            return 0
        return self._server.drop_clients()

    @property
    def client_count(self) -> int:
        return self._server.client_count if self._server else 0

    @property
    def lines_echoed(self) -> int:
        return self._server.lines_echoed if self._server else 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
