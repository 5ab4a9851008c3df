#!/usr/bin/env python3
"""UDP chat server: a single sequential router over tagged datagrams.

* ``REGISTER:<name>`` / ``UNREGISTER:`` / ``MESSAGE:<body>`` / ``COMMAND:<cmd>``
* Clients are identified by their source address only.
* No heartbeat and no timeout eviction: a client that vanishes without sending
  ``UNREGISTER:`` stays registered until a send to it fails.
"""

from __future__ import annotations

import queue                          # Thread-safe FIFO between recv-thread & router
import socket
import sys
import threading
from datetime import datetime
from typing import Callable, Tuple

from .broadcast import BroadcastEngine
from .commands import ActionKind, CommandDispatcher
from .handles import DatagramHandle
from .protocol import (
    BUF_SIZE, COMMAND, ERR_NAME_EMPTY, ERR_NAME_TAKEN_UDP, MESSAGE, REGISTER, SERVER_HOST,
    UDP_DEFAULT_PORT, UDP_HELP_LINES, UNREGISTER, address_in_use, parse_datagram,
    register_success, unknown_command,
)
from .registry import AddressInUse, InvalidName, NameTaken, SessionRegistry
from .util import LOG, get_local_ip, parse_address

Address = Tuple[str, int]
RECV_POLL = 0.5      # seconds; both loops re-check the running flag this often


class UDPChatServer:
    """Event-driven UDP server / message router."""

    def __init__(
        self,
        host: str = SERVER_HOST,
        port: int = UDP_DEFAULT_PORT,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        # ------ bind socket ------
        self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            self.sock.bind((host, port))
        except OSError:
            self.sock.close()
            raise
        self.sock.settimeout(RECV_POLL)

        # ------ runtime state ------
        # One registry holds both directions: name ➜ handle and address ➜ name.
        self.registry = SessionRegistry()
        self.engine = BroadcastEngine(self.registry, clock)
        self.dispatcher = CommandDispatcher(self.engine, UDP_HELP_LINES, unknown_hint=False)

        # recv-thread pushes datagrams, the router pops them one at a time.
        self.recv_q: "queue.Queue[Tuple[bytes, Address]]" = queue.Queue()

        self.running = threading.Event()

    @property
    def address(self) -> Address:
        return self.sock.getsockname()[:2]

    # ================================================================= main ===
    def start(self) -> None:
        host, port = self.address
        LOG.info("UDP chat server listening on %s:%d (local ip %s)", host, port, get_local_ip())
        try:
            self.serve_forever()
        except KeyboardInterrupt:
            LOG.info("Shutdown requested")
        finally:
            self.stop()

    def serve_forever(self) -> None:
        self.running.set()
        threading.Thread(target=self._recv_loop, name="udp-recv", daemon=True).start()
        self._process_loop()

    def stop(self) -> None:
        self.running.clear()
        self.sock.close()

    # ---------------------------------------------------------------- internals
    def _recv_loop(self) -> None:
        """Listener thread: immediately enqueue received datagrams."""
        while self.running.is_set():
            try:
                data, addr = self.sock.recvfrom(BUF_SIZE)
            except socket.timeout:
                continue
            except ConnectionError as exc:     # ICMP unreachable reported on some platforms
                LOG.debug("recvfrom reported %s", exc)
                continue
            except OSError:                    # Socket closed
                break
            self.recv_q.put((data, addr))

    def _process_loop(self) -> None:
        """Single-threaded router: dequeue datagrams and dispatch by tag."""
        while self.running.is_set():
            try:
                data, addr = self.recv_q.get(timeout=RECV_POLL)
            except queue.Empty:
                continue
            self.handle_datagram(data, addr)

    def _send(self, line: str, addr: Address) -> bool:
        """Reply to one address; a failed send drops that client without announcement."""
        if DatagramHandle(self.sock, addr).deliver(line):
            return True
        name = self.registry.name_for(addr)
        if name is not None and self.registry.unregister(name):
            LOG.info("Dropped unreachable client %s", name)
        return False

    # ---------------------------------------------------------------- router
    def handle_datagram(self, data: bytes, addr: Address) -> None:
        dgram = parse_datagram(data)
        if dgram is None:
            LOG.debug("Dropped untagged datagram from %s:%d", addr[0], addr[1])
            return

        if dgram.tag == REGISTER:
            self._handle_register(dgram.payload, addr)
        elif dgram.tag == UNREGISTER:
            self._handle_unregister(addr)
        elif dgram.tag == MESSAGE:
            self._handle_message(dgram.payload, addr)
        elif dgram.tag == COMMAND:
            self._handle_command(dgram.payload, addr)

    # ---------------------------------------------------------------- handlers
    def _handle_register(self, name: str, addr: Address) -> None:
        try:
            self.engine.join(name, DatagramHandle(self.sock, addr), welcome=register_success)
        except InvalidName:
            self._send(ERR_NAME_EMPTY, addr)
        except NameTaken:
            LOG.info("Rejected duplicate name %r from %s:%d", name.strip(), addr[0], addr[1])
            self._send(ERR_NAME_TAKEN_UDP, addr)
        except AddressInUse as exc:
            self._send(address_in_use(exc.name), addr)

    def _handle_unregister(self, addr: Address) -> None:
        name = self.registry.name_for(addr)
        if name is not None:
            self.engine.leave(name)

    def _handle_message(self, body: str, addr: Address) -> None:
        name = self.registry.name_for(addr)
        if name is None:
            LOG.debug("Message from unregistered %s:%d ignored", addr[0], addr[1])
            return
        self.engine.broadcast(name, body)

    def _handle_command(self, command: str, addr: Address) -> None:
        action = self.dispatcher.dispatch(command)
        if action.kind is ActionKind.QUIT:
            self._handle_unregister(addr)
        elif action.kind is ActionKind.REPLY:
            for line in action.lines:
                self._send(line, addr)
        else:
            # COMMAND: payload without a leading "/" is not a command at all.
            self._send(unknown_command(command, with_hint=False), addr)

# ======================================================================
#  Command-line entry point
# ======================================================================

def main(argv=None) -> None:
    args = parse_address("chatroom-udp-server", SERVER_HOST, UDP_DEFAULT_PORT, argv)
    try:
        server = UDPChatServer(args.host, args.port)
    except OSError as exc:
        LOG.error("Server failed to start on %s:%d: %s", args.host, args.port, exc)
        sys.exit(1)
    server.start()


if __name__ == "__main__":
    main()
