#!/usr/bin/env python3
"""Per-peer delivery handles: the one thing the broadcast engine needs from a transport.

A handle pushes one line of text to one peer and reports whether that worked.
Failure is the only liveness signal either transport has.
"""

from __future__ import annotations

import socket                          # Stream + datagram sockets
import threading                       # Per-handle write lock
from typing import Hashable, Tuple     # Typing helpers

from .protocol import ENCODING, encode_line
from .util import LOG


class DeliveryHandle:
    """Interface shared by both transports."""

    @property
    def key(self) -> Hashable:
        """Identity of the peer, used for the registry's reverse lookup."""
        raise NotImplementedError

    def deliver(self, line: str) -> bool:
        """Try to push ``line``; ``True`` on success, ``False`` on any I/O error."""
        raise NotImplementedError

    def close(self) -> None:
        """Release whatever the handle owns (no-op by default)."""

# ======================================================================
#  TCP: owned connection
# ======================================================================

class StreamHandle(DeliveryHandle):
    """Owns the writable end of one TCP connection."""

    def __init__(self, conn: socket.socket, peer: Tuple[str, int] | None = None) -> None:
        self.conn = conn                          # Accepted, blocking socket
        self.peer = peer                          # (ip, port) for log lines only

        # Broadcasts and command replies come from different threads; keep lines whole.
        self._write_lock = threading.Lock()

        # close() must never wait on _write_lock: a writer may be stuck in sendall.
        self._state_lock = threading.Lock()
        self._closed = False

    @property
    def key(self) -> Hashable:
        return id(self)                           # Unique while the handle is registered

    @property
    def closed(self) -> bool:
        return self._closed

    # ---------------------------------------------------------------- write
    def deliver(self, line: str) -> bool:
        with self._write_lock:
            if self._closed:                      # Torn down: report failure, touch nothing
                return False
            try:
                self.conn.sendall(encode_line(line))
            except OSError as exc:                # Broken pipe / reset / shut down under us
                LOG.debug("write to %s failed: %s", self.peer, exc)
                return False
        return True

    # ---------------------------------------------------------------- teardown
    def close(self) -> None:
        """Shut the connection down; safe from any thread, any number of times.

        The shutdown makes a ``sendall`` blocked on a non-reading peer fail, so
        its writer lets go of the write lock instead of holding it forever.
        """
        with self._state_lock:
            if self._closed:
                return
            self._closed = True
        try:
            self.conn.shutdown(socket.SHUT_RDWR)  # Wakes blocked readers and writers
        except OSError:
            pass                                  # Peer already gone
        self.conn.close()

    def __repr__(self) -> str:
        return f"StreamHandle(peer={self.peer!r}, closed={self._closed})"

# ======================================================================
#  UDP: remembered address
# ======================================================================

class DatagramHandle(DeliveryHandle):
    """Non-owning reference to a remote UDP endpoint, sent through the server's socket."""

    def __init__(self, sock: socket.socket, addr: Tuple[str, int]) -> None:
        self.sock = sock                          # Server socket, shared by every handle
        self.addr = addr                          # Client (ip, port) from recvfrom()

    @property
    def key(self) -> Hashable:
        return self.addr                          # Address ➜ name is the UDP reverse lookup

    def deliver(self, line: str) -> bool:
        try:
            self.sock.sendto(line.encode(ENCODING), self.addr)
        except OSError as exc:                    # Unreachable host/port: the only disconnect signal
            LOG.warning("send to %s:%d failed: %s", self.addr[0], self.addr[1], exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"DatagramHandle(addr={self.addr!r})"
