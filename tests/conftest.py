"""Test configuration and fixtures."""
import re
import socket
import threading
import time
from datetime import datetime

import pytest

from chatroom.handles import DeliveryHandle
from chatroom.tcp_server import TCPChatServer
from chatroom.udp_server import UDPChatServer

IO_TIMEOUT = 5.0
FIXED_NOW = datetime(2024, 5, 17, 9, 3, 7)
LINE_RE = r"^\[\d\d:\d\d:\d\d\] {sender}: {body}$"


def chat_line(sender, body):
    """Regex for a broadcast line, timestamp as a pattern."""
    return re.compile(LINE_RE.format(sender=re.escape(sender), body=re.escape(body)))


def wait_for(predicate, timeout=IO_TIMEOUT):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class FakeHandle(DeliveryHandle):
    """Records delivered lines; can be told to fail."""

    def __init__(self, fail=False):
        self.lines = []
        self.fail = fail
        self.closed = False

    @property
    def key(self):
        return id(self)

    def deliver(self, line):
        if self.fail:
            return False
        self.lines.append(line)
        return True

    def close(self):
        self.closed = True


class RecordingSocket:
    """Stands in for the UDP server socket; ``unreachable`` addresses raise on send."""

    def __init__(self, unreachable=()):
        self.sent = []
        self.unreachable = set(unreachable)

    def sendto(self, data, addr):
        if addr in self.unreachable:
            raise ConnectionRefusedError(111, "Connection refused")
        self.sent.append((addr, data.decode("utf-8")))
        return len(data)

    def lines_for(self, addr):
        return [line for a, line in self.sent if a == addr]

    def close(self):
        pass


class LineClient:
    """Minimal raw TCP peer for driving the stream server."""

    def __init__(self, address):
        self.sock = socket.create_connection(address, timeout=IO_TIMEOUT)
        self.rfile = self.sock.makefile("r", encoding="utf-8", newline="\n")

    def send(self, line):
        self.sock.sendall((line + "\n").encode("utf-8"))

    def read(self):
        """Next line without its newline; ``None`` at EOF."""
        raw = self.rfile.readline()
        return raw.rstrip("\r\n") if raw else None

    def read_until(self, predicate):
        seen = []
        while True:
            line = self.read()
            if line is None:
                raise AssertionError(f"EOF before expected line; saw {seen!r}")
            seen.append(line)
            if predicate(line):
                return line, seen

    def login(self, name):
        """Consume the welcome prompt, send ``name`` and return the reply line."""
        self.read()
        self.send(name)
        return self.read()

    def close(self):
        self.rfile.close()
        self.sock.close()


class DatagramClient:
    def __init__(self, server_address):
        self.server = server_address
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.bind(("127.0.0.1", 0))
        self.sock.settimeout(IO_TIMEOUT)

    @property
    def address(self):
        return self.sock.getsockname()

    def send(self, text):
        self.sock.sendto(text.encode("utf-8"), self.server)

    def recv(self):
        data, _ = self.sock.recvfrom(1024)
        return data.decode("utf-8")

    def recv_until(self, predicate):
        seen = []
        while True:
            line = self.recv()
            seen.append(line)
            if predicate(line):
                return line, seen

    def close(self):
        self.sock.close()


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW


@pytest.fixture
def tcp_server():
    """Stream server on an ephemeral loopback port, accepting in a background thread."""
    server = TCPChatServer("127.0.0.1", 0)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield server
    server.stop()
    t.join(IO_TIMEOUT)


@pytest.fixture
def tcp_peer(tcp_server):
    """Factory for connected :class:`LineClient` peers, closed after the test."""
    peers = []

    def connect():
        peer = LineClient(tcp_server.address)
        peers.append(peer)
        return peer

    yield connect
    for peer in peers:
        peer.close()


@pytest.fixture
def udp_server():
    server = UDPChatServer("127.0.0.1", 0)
    t = threading.Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield server
    server.stop()
    t.join(IO_TIMEOUT)


@pytest.fixture
def udp_peer(udp_server):
    peers = []

    def connect():
        peer = DatagramClient(udp_server.address)
        peers.append(peer)
        return peer

    yield connect
    for peer in peers:
        peer.close()
