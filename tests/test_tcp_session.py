"""Tests for the TCP socket session."""

import socket
import time
from unittest.mock import MagicMock, patch

import pytest

from tcplink.network.tcp_session import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CONNECT_TIMEOUT,
    SocketSession,
)

WAIT = 5.0


def _receive_until(session, deadline=WAIT):
    """Poll receive() until it yields text or the deadline passes."""
    end = time.time() + deadline
    while time.time() < end:
        text = session.receive()
        if text is not None:
            return text
        time.sleep(0.01)
    return None


class TestDefaults:
    def test_constants(self):
        assert DEFAULT_CONNECT_TIMEOUT == 5.0
        assert DEFAULT_CHUNK_SIZE == 1024

    def test_new_session_is_disconnected(self):
        session = SocketSession()
        assert session.is_connected() is False
        assert session.peer == ""

    def test_send_without_connection_returns_false(self):
        assert SocketSession().send("hello") is False

    def test_receive_without_connection_returns_none(self):
        assert SocketSession().receive() is None

    def test_disconnect_without_connection_is_noop(self):
        session = SocketSession()
        session.disconnect()
        session.disconnect()
        assert session.is_connected() is False


class TestConnect:
    def test_connect_to_listening_server(self, echo_server):
        session = SocketSession()
        assert session.connect("127.0.0.1", echo_server.port) is True
        assert session.is_connected() is True
        assert session.peer == f"127.0.0.1:{echo_server.port}"
        session.disconnect()

    def test_connect_refused_returns_false(self, free_port):
        session = SocketSession(connect_timeout=1.0)
        assert session.connect("127.0.0.1", free_port) is False
        assert session.is_connected() is False

    def test_connect_unresolvable_host_returns_false(self):
        session = SocketSession(connect_timeout=1.0)
        with patch("socket.create_connection",
                   side_effect=socket.gaierror("Name or service not known")):
            assert session.connect("no-such-host.invalid", 80) is False
        assert session.is_connected() is False

    def test_connect_timeout_returns_false(self):
        session = SocketSession(connect_timeout=0.1)
        with patch("socket.create_connection", side_effect=socket.timeout("timed out")):
            assert session.connect("10.255.255.1", 80) is False

    def test_connect_invalid_port_returns_false(self):
        session = SocketSession()
        assert session.connect("127.0.0.1", 70000) is False

    def test_connect_uses_configured_timeout(self):
        session = SocketSession(connect_timeout=1.5)
        fake = MagicMock()
        with patch("socket.create_connection", return_value=fake) as create:
            assert session.connect("127.0.0.1", 9000) is True
        create.assert_called_once_with(("127.0.0.1", 9000), timeout=1.5)
        fake.setsockopt.assert_called_once_with(
            socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

    def test_reconnect_closes_previous_socket(self, echo_server):
        session = SocketSession()
        assert session.connect("127.0.0.1", echo_server.port)
        first = session._sock
        assert session.connect("127.0.0.1", echo_server.port)
        assert first.fileno() == -1
        assert session.is_connected()
        session.disconnect()

    def test_failed_reconnect_leaves_session_disconnected(self, echo_server, free_port):
        session = SocketSession(connect_timeout=1.0)
        assert session.connect("127.0.0.1", echo_server.port)
        assert session.connect("127.0.0.1", free_port) is False
        assert session.is_connected() is False


class TestSendReceive:
    def test_echo_round_trip(self, echo_server):
        session = SocketSession()
        assert session.connect("127.0.0.1", echo_server.port)
        assert session.send("hello") is True
        assert _receive_until(session) == "hello"
        session.disconnect()

    def test_send_appends_line_terminator(self):
        session = SocketSession()
        fake = MagicMock()
        with patch("socket.create_connection", return_value=fake):
            session.connect("127.0.0.1", 9000)
        session.send("PICKUP:1234")
        fake.sendall.assert_called_once_with(b"PICKUP:1234\n")

    def test_send_failure_returns_false(self):
        session = SocketSession()
        fake = MagicMock()
        fake.sendall.side_effect = BrokenPipeError("broken pipe")
        with patch("socket.create_connection", return_value=fake):
            session.connect("127.0.0.1", 9000)
        assert session.send("hello") is False

    def test_receive_with_nothing_waiting_returns_none(self, echo_server):
        session = SocketSession()
        session.connect("127.0.0.1", echo_server.port)
        assert session.receive() is None
        assert session.is_connected() is True
        session.disconnect()

    def test_receive_decodes_invalid_utf8_with_replacement(self):
        a, b = socket.socketpair()
        try:
            session = SocketSession()
            session._sock = a
            session._connected = True
            b.sendall(b"caf\xff\n")
            text = _receive_until(session)
            assert text == "caf\ufffd"
        finally:
            a.close()
            b.close()

    def test_receive_returns_chunk_without_framing(self):
        a, b = socket.socketpair()
        try:
            session = SocketSession()
            session._sock = a
            session._connected = True
            b.sendall(b"one\ntwo\n")
            time.sleep(0.05)
            assert _receive_until(session) == "one\ntwo"
        finally:
            a.close()
            b.close()

    def test_receive_respects_chunk_size(self):
        a, b = socket.socketpair()
        try:
            session = SocketSession(chunk_size=4)
            session._sock = a
            session._connected = True
            b.sendall(b"abcdefgh")
            assert _receive_until(session) == "abcd"
            assert _receive_until(session) == "efgh"
        finally:
            a.close()
            b.close()


class TestPeerClose:
    def test_peer_close_disconnects_session(self, echo_server):
        session = SocketSession()
        assert session.connect("127.0.0.1", echo_server.port)
        end = time.time() + WAIT
        while echo_server.client_count == 0 and time.time() < end:
            time.sleep(0.01)
        echo_server.close_clients()

        end = time.time() + WAIT
        while session.is_connected() and time.time() < end:
            assert session.receive() is None
            time.sleep(0.01)
        assert session.is_connected() is False
        assert session.peer == ""

    def test_reset_during_receive_disconnects(self):
        session = SocketSession()
        fake = MagicMock()
        fake.fileno.return_value = 5
        with patch("socket.create_connection", return_value=fake):
            session.connect("127.0.0.1", 9000)
        with patch("select.select", return_value=([fake], [], [])):
            fake.recv.side_effect = ConnectionResetError("reset by peer")
            assert session.receive() is None
        assert session.is_connected() is False

    def test_is_connected_false_after_socket_closed_underneath(self, echo_server):
        session = SocketSession()
        session.connect("127.0.0.1", echo_server.port)
        session._sock.close()
        assert session.is_connected() is False
        session.disconnect()
