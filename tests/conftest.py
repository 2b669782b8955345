"""Shared fixtures for the tcplink test suite."""

import socket

import pytest

from tcplink.network.connection_coordinator import ConnectionCoordinator
from tcplink.network.tcp_session import SocketSession
from tcplink.utils.echo_server import EchoServer


@pytest.fixture
def tmp_config(tmp_path):
    """Provide a temporary config file path."""
    return tmp_path / "settings.json"


@pytest.fixture
def echo_server():
    """Line echo server on a free loopback port."""
    server = EchoServer("127.0.0.1", 0)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def free_port():
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def coordinator():
    """Coordinator with a short poll interval, released after the test."""
    coord = ConnectionCoordinator(
        session=SocketSession(connect_timeout=2.0),
        poll_interval=0.01,
    )
    yield coord
    coord.release()
