"""Tests for the line echo server."""

import socket
import time

import pytest

from tcplink.utils.echo_server import EchoServer

WAIT = 5.0


def _wait_until(predicate, timeout=WAIT):
    end = time.time() + timeout
    while time.time() < end:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _read_line(sock):
    buf = b""
    while not buf.endswith(b"\n"):
        chunk = sock.recv(1024)
        if not chunk:
            break
        buf += chunk
    return buf


class TestEchoServerLifecycle:
    def test_start_returns_bound_port(self):
        server = EchoServer("127.0.0.1", 0)
        try:
            port = server.start()
            assert port > 0
            assert server.port == port
            assert server.running is True
        finally:
            server.stop()
        assert server.running is False

    def test_start_twice_returns_same_port(self, echo_server):
        assert echo_server.start() == echo_server.port

    def test_stop_without_start(self):
        server = EchoServer()
        server.stop()
        assert server.client_count == 0
        assert server.lines_echoed == 0
        assert server.close_clients() == 0


class TestEcho:
    def test_echoes_each_line(self, echo_server):
        with socket.create_connection(("127.0.0.1", echo_server.port), timeout=WAIT) as s:
            s.sendall(b"hello\n")
            assert _read_line(s) == b"hello\n"
            s.sendall(b"PICKUP:1234\n")
            assert _read_line(s) == b"PICKUP:1234\n"
        assert _wait_until(lambda: echo_server.lines_echoed == 2)

    def test_tracks_clients(self, echo_server):
        with socket.create_connection(("127.0.0.1", echo_server.port), timeout=WAIT):
            assert _wait_until(lambda: echo_server.client_count == 1)
        assert _wait_until(lambda: echo_server.client_count == 0)


class TestCloseClients:
    def test_close_clients_hangs_up(self, echo_server):
        with socket.create_connection(("127.0.0.1", echo_server.port), timeout=WAIT) as s:
            assert _wait_until(lambda: echo_server.client_count == 1)
            assert echo_server.close_clients() == 1
            assert s.recv(1024) == b""
        assert echo_server.client_count == 0

    def test_server_keeps_accepting_after_close_clients(self, echo_server):
        with socket.create_connection(("127.0.0.1", echo_server.port), timeout=WAIT):
            assert _wait_until(lambda: echo_server.client_count == 1)
            echo_server.close_clients()
        with socket.create_connection(("127.0.0.1", echo_server.port), timeout=WAIT) as s:
            s.sendall(b"again\n")
            assert _read_line(s) == b"again\n"

    def test_stop_closes_clients(self):
        server = EchoServer("127.0.0.1", 0)
        port = server.start()
        with socket.create_connection(("127.0.0.1", port), timeout=WAIT) as s:
            assert _wait_until(lambda: server.client_count == 1)
            server.stop()
            assert s.recv(1024) == b""
