#!/usr/bin/env python3
"""TCP chat server: one blocking accept loop, one worker per connection.

Each worker logs its peer in (first line = username), then reads lines and
dispatches them until EOF, an I/O error or ``/quit``.  Whatever the exit
path, the session is unregistered and the connection closed exactly once.
"""

from __future__ import annotations

import socket
import sys
import threading
from datetime import datetime
from typing import Callable, Optional, TextIO, Tuple

from .broadcast import BroadcastEngine
from .commands import ActionKind, CommandDispatcher
from .handles import StreamHandle
from .pool import ThreadPerConnectionPool, WorkerPool
from .protocol import (
    ENCODING, ERR_NAME_EMPTY, ERR_NAME_TAKEN, GOODBYE, SERVER_HOST, TCP_DEFAULT_PORT,
    TCP_HELP_LINES, TCP_WELCOME, login_success, strip_eol,
)
from .registry import NameTaken, SessionRegistry
from .util import LOG, get_local_ip, parse_address

ACCEPT_POLL = 0.5      # seconds; lets the accept loop notice stop()


class TCPChatServer:
    """Stream-transport chat server bound at construction time."""

    def __init__(
        self,
        host: str = SERVER_HOST,
        port: int = TCP_DEFAULT_PORT,
        pool: Optional[WorkerPool] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        # ------ bind socket ------
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.sock.bind((host, port))
            self.sock.listen()
        except OSError:
            self.sock.close()
            raise
        self.sock.settimeout(ACCEPT_POLL)

        # ------ runtime state (owned by this instance, handed to every worker) ------
        self.registry = SessionRegistry()
        self.engine = BroadcastEngine(self.registry, clock)
        self.dispatcher = CommandDispatcher(self.engine, TCP_HELP_LINES)
        self.pool = pool or ThreadPerConnectionPool()

        self.running = threading.Event()

    @property
    def address(self) -> Tuple[str, int]:
        return self.sock.getsockname()[:2]

    # ================================================================= main ===
    def start(self) -> None:
        host, port = self.address
        LOG.info("TCP chat server listening on %s:%d (local ip %s)", host, port, get_local_ip())
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            LOG.info("Shutdown requested")
        finally:
            self.stop()

    def serve_forever(self) -> None:
        self.running.set()
        while self.running.is_set():
            try:
                conn, addr = self.sock.accept()
            except socket.timeout:
                continue
            except OSError as exc:
                if not self.running.is_set() or self.sock.fileno() == -1:
                    break
                LOG.error("accept failed: %s", exc)
                continue
            LOG.info("New connection from %s:%d", addr[0], addr[1])
            self.pool.submit(self.handle_client, conn, addr)

    def stop(self) -> None:
        """Stop accepting, then close every live session so their workers unwind."""
        self.running.clear()
        self.sock.close()
        for _, handle in self.registry.lookup_all():
            handle.close()
        self.pool.shutdown(wait=False)

    # ================================================================ worker ===
    def handle_client(self, conn: socket.socket, addr: Tuple[str, int]) -> None:
        handle = StreamHandle(conn, addr)
        rfile = conn.makefile("r", encoding=ENCODING, errors="replace", newline="\n")
        name: Optional[str] = None
        try:
            handle.deliver(TCP_WELCOME)
            name = self._login(rfile, handle)
            if name is not None:
                self._chat_loop(name, rfile, handle)
        except OSError as exc:
            LOG.warning("I/O error with %s (%s): %s", name or "?", addr[0], exc)
        finally:
            if name is not None:
                self.engine.leave(name, handle)
            try:
                rfile.close()
            except OSError:
                pass
            handle.close()
            LOG.info("Connection of %s closed", name or f"{addr[0]}:{addr[1]}")

    def _login(self, rfile: TextIO, handle: StreamHandle) -> Optional[str]:
        """Read the username line and register it; ``None`` when login failed."""
        raw = rfile.readline()
        if not raw:
            return None
        candidate = strip_eol(raw).strip()
        if not candidate:
            handle.deliver(ERR_NAME_EMPTY)
            return None
        try:
            name = self.engine.join(candidate, handle, welcome=login_success)
        except NameTaken:
            LOG.info("Rejected duplicate name %r from %s", candidate, handle.peer)
            handle.deliver(ERR_NAME_TAKEN)
            return None
        handle.deliver(self.engine.roster())
        return name

    def _chat_loop(self, name: str, rfile: TextIO, handle: StreamHandle) -> None:
        for raw in rfile:
            action = self.dispatcher.dispatch(strip_eol(raw))
            if action.kind is ActionKind.BROADCAST:
                self.engine.broadcast(name, action.body)
            elif action.kind is ActionKind.REPLY:
                for line in action.lines:
                    handle.deliver(line)
            else:
                handle.deliver(GOODBYE)
                return

# ======================================================================
#  Command-line entry point
# ======================================================================

def main(argv=None) -> None:
    args = parse_address("chatroom-tcp-server", SERVER_HOST, TCP_DEFAULT_PORT, argv)
    try:
        server = TCPChatServer(args.host, args.port)
    except OSError as exc:
        LOG.error("Server failed to start on %s:%d: %s", args.host, args.port, exc)
        sys.exit(1)
    server.start()


if __name__ == "__main__":
    main()
