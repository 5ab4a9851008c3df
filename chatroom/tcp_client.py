#!/usr/bin/env python3
"""Command-line TCP chat client.

Usage (after installing the package locally):

    chatroom-tcp-client                     # localhost:8888
    chatroom-tcp-client 192.168.1.100       # 192.168.1.100:8888
    chatroom-tcp-client 192.168.1.100 9999
"""

from __future__ import annotations

import socket
import sys
import threading
from typing import Optional, TextIO

from .protocol import (
    CMD_QUIT, DEFAULT_HOST, ENCODING, QUIT_COMMANDS, SUCCESS, TCP_DEFAULT_PORT, encode_line,
    strip_eol,
)
from .util import LOG, colorize, parse_address

# 3rd-party: coloured terminal output
from colorama import init
init(autoreset=True)

BANNER = (
    "\n=== 欢迎来到TCP聊天室 ===\n"
    "输入消息并按回车发送\n"
    "输入 /help 查看命令帮助\n"
    "输入 /quit 退出聊天室\n"
    "========================\n"
)


class TCPChatClient:
    """Interactive client; also usable programmatically (pass ``name`` to :meth:`login`)."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = TCP_DEFAULT_PORT) -> None:
        self.server = (host, port)
        self.sock: Optional[socket.socket] = None
        self.rfile: Optional[TextIO] = None
        self.name: str = ""

        self.running = threading.Event()
        self._closed = threading.Event()

    # ================================================================== setup ===
    def connect(self) -> bool:
        LOG.info("Connecting to %s:%d ...", *self.server)
        try:
            self.sock = socket.create_connection(self.server)
        except OSError as exc:
            LOG.error("Connection failed: %s", exc)
            return False
        self.rfile = self.sock.makefile("r", encoding=ENCODING, errors="replace", newline="\n")
        self.running.set()
        LOG.info("Connected")
        return True

    def login(self, name: Optional[str] = None) -> bool:
        """Welcome prompt ➜ send name ➜ ``SUCCESS:``/``ERROR:`` reply."""
        try:
            welcome = self._read_line()
            if welcome is None:
                return False
            print(welcome)

            self.name = name if name is not None else input("请输入用户名: ").strip()
            self.send(self.name)

            response = self._read_line()
        except OSError as exc:
            LOG.error("Login failed: %s", exc)
            return False

        if response is None:
            LOG.error("Server closed the connection during login")
            return False
        print(colorize(response))
        if not response.startswith(SUCCESS):
            LOG.error("Login rejected, exiting")
            return False
        print(BANNER)
        return True

    # ================================================================== main ===
    def start(self) -> None:
        """Blocking run-loop: stdin in this thread, server lines in a background one."""
        threading.Thread(target=self._recv_loop, name="tcp-recv", daemon=True).start()
        try:
            while self.running.is_set():
                try:
                    line = input()
                except EOFError:
                    break
                if line in QUIT_COMMANDS:
                    break
                if not self.send(line):
                    LOG.error("Send failed, connection may be lost")
                    break
        except KeyboardInterrupt:
            pass
        finally:
            self.disconnect()

    # ---------------------------------------------------------------- networking
    def send(self, line: str) -> bool:
        if self.sock is None:
            return False
        try:
            self.sock.sendall(encode_line(line))
        except OSError as exc:
            LOG.debug("send failed: %s", exc)
            return False
        return True

    def _read_line(self) -> Optional[str]:
        raw = self.rfile.readline() if self.rfile else ""
        return strip_eol(raw) if raw else None

    def _recv_loop(self) -> None:
        try:
            while self.running.is_set():
                line = self._read_line()
                if line is None:
                    break
                print(colorize(line))
        except (OSError, ValueError):           # ValueError: file closed under us
            pass
        if self.running.is_set():
            LOG.warning("Server closed the connection")
            self.running.clear()

    def disconnect(self) -> None:
        """Tell the server we quit, then release the socket; idempotent."""
        if self._closed.is_set():
            return
        self._closed.set()
        self.running.clear()
        if self.sock is not None:
            self.send(CMD_QUIT)
            try:
                self.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self.sock.close()
        LOG.info("Disconnected, bye!")

# ======================================================================
#  Command-line entry point
# ======================================================================

def main(argv=None) -> None:
    args = parse_address("chatroom-tcp-client", DEFAULT_HOST, TCP_DEFAULT_PORT, argv)
    client = TCPChatClient(args.host, args.port)
    if not client.connect():
        sys.exit(1)
    if not client.login():
        client.disconnect()
        sys.exit(1)
    client.start()


if __name__ == "__main__":
    main()
