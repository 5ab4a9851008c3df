#!/usr/bin/env python3
"""Command-line UDP chat client.

Plain lines go out as ``MESSAGE:``, ``/``-lines as ``COMMAND:``; ``/quit`` or
``/exit`` sends ``UNREGISTER:`` and leaves.

    chatroom-udp-client                     # localhost:8889
    chatroom-udp-client 192.168.1.100 9999
"""

from __future__ import annotations

import socket
import sys
import threading
from typing import Optional

from .protocol import (
    BUF_SIZE, COMMAND, DEFAULT_HOST, ENCODING, ERROR, MESSAGE, QUIT_COMMANDS, REGISTER,
    SUCCESS, UDP_DEFAULT_PORT, UNREGISTER, make_datagram,
)
from .util import LOG, colorize, parse_address

# 3rd-party: coloured terminal output
from colorama import init
init(autoreset=True)

REPLY_WAIT = 1.0       # seconds to wait for the REGISTER reply

BANNER = (
    "\n=== 欢迎来到UDP聊天室 ===\n"
    "输入消息并按回车发送\n"
    "输入 /help 查看命令帮助\n"
    "输入 /quit 退出聊天室\n"
    "========================\n"
)


class UDPChatClient:
    """Embeds the client state machine; usable programmatically too."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = UDP_DEFAULT_PORT) -> None:
        self.server = (host, port)
        self.sock: Optional[socket.socket] = None
        self.name: str = ""

        self.running = threading.Event()
        self._replied = threading.Event()      # set on the first SUCCESS:/ERROR: reply
        self._rejected = False
        self._closed = threading.Event()

    # ================================================================== setup ===
    def connect(self) -> bool:
        """Create and bind the socket; UDP has no handshake, so this cannot tell if anyone listens."""
        LOG.info("Opening UDP socket towards %s:%d ...", *self.server)
        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self.sock.bind(("", 0))
        except OSError as exc:
            LOG.error("Socket setup failed: %s", exc)
            return False
        self.running.set()
        LOG.info("Client bound on port %d", self.sock.getsockname()[1])
        return True

    def login(self, name: Optional[str] = None, wait: float = REPLY_WAIT) -> bool:
        """Send ``REGISTER:``, start the listener and wait briefly for the reply.

        Returns ``False`` only on an explicit ``ERROR:``; silence counts as success.
        """
        self.name = name if name is not None else input("请输入用户名: ").strip()
        self._send(make_datagram(REGISTER, self.name))
        threading.Thread(target=self._recv_loop, name="udp-recv", daemon=True).start()

        self._replied.wait(wait)
        if self._rejected:
            LOG.error("Registration rejected")
            return False
        print(BANNER)
        return True

    # ================================================================== main ===
    def start(self) -> None:
        try:
            while self.running.is_set():
                try:
                    line = input()
                except EOFError:
                    break
                if line in QUIT_COMMANDS:
                    break
                self.send_line(line)
        except KeyboardInterrupt:
            pass
        finally:
            self.disconnect()

    def send_line(self, line: str) -> None:
        tag = COMMAND if line.startswith("/") else MESSAGE
        self._send(make_datagram(tag, line))

    # ---------------------------------------------------------------- networking
    def _send(self, pkt: bytes) -> None:
        """Thin wrapper around sock.sendto() with basic error handling."""
        if self.sock is None:
            return
        try:
            self.sock.sendto(pkt, self.server)
        except OSError as exc:
            LOG.error("Send failed: %s", exc)

    def _recv_loop(self) -> None:
        while self.running.is_set():
            try:
                data, _ = self.sock.recvfrom(BUF_SIZE)
            except ConnectionError:              # ICMP unreachable (server down)
                continue
            except OSError:                      # Socket closed
                break
            line = data.decode(ENCODING, errors="replace")
            if line.startswith(ERROR) and not self._replied.is_set():
                self._rejected = True
            if line.startswith((SUCCESS, ERROR)):
                self._replied.set()
            print(colorize(line))

    def disconnect(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        self.running.clear()
        if self.sock is not None:
            self._send(make_datagram(UNREGISTER, self.name))
            self.sock.close()
        LOG.info("Disconnected, bye!")

# ======================================================================
#  Command-line entry point
# ======================================================================

def main(argv=None) -> None:
    args = parse_address("chatroom-udp-client", DEFAULT_HOST, UDP_DEFAULT_PORT, argv)
    client = UDPChatClient(args.host, args.port)
    if not client.connect():
        sys.exit(1)
    if not client.login():
        client.disconnect()
        sys.exit(1)
    client.start()


if __name__ == "__main__":
    main()
