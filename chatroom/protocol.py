#!/usr/bin/env python3
"""Shared constants, fixed texts and framing helpers used by **both** transports.

Everything that travels over the network is built or picked apart via the
helpers here so that clients & servers never disagree on wire-format details.
The stream transport speaks newline-terminated UTF-8 lines; the datagram
transport sends one UTF-8 string per datagram, tagged with a literal prefix.
"""

from __future__ import annotations       # Postponed annotation evaluation (PEP 563)
from dataclasses import dataclass        # Immutable record for a decoded datagram
from datetime import datetime            # Wall-clock stamp for broadcast lines
from typing import List, Optional, Sequence

# --- Network configuration -------------------------------------------------
BUF_SIZE: int = 1024               # Max UDP datagram size we accept/read (bytes)
ENCODING: str = "utf-8"            # Everything on the wire is UTF-8
TCP_DEFAULT_PORT: int = 8888       # Stream server port
UDP_DEFAULT_PORT: int = 8889       # Datagram server port
DEFAULT_HOST: str = "localhost"    # Where clients connect by default
SERVER_HOST: str = "0.0.0.0"       # Servers listen on every interface by default

# --- Datagram tags ---------------------------------------------------------
# Every client datagram starts with one of these literal prefixes.  There is no
# length field and no escaping: the first matching prefix wins.
REGISTER = "REGISTER:"             # REGISTER:<username>
UNREGISTER = "UNREGISTER:"         # UNREGISTER:  (address-keyed, payload ignored)
MESSAGE = "MESSAGE:"               # MESSAGE:<body>
COMMAND = "COMMAND:"               # COMMAND:</users|/help|/quit|...>

DATAGRAM_TAGS = (REGISTER, UNREGISTER, MESSAGE, COMMAND)

# --- Login exchange markers ------------------------------------------------
SUCCESS = "SUCCESS:"
ERROR = "ERROR:"

# --- Commands --------------------------------------------------------------
CMD_USERS = "/users"
CMD_HELP = "/help"
CMD_QUIT = "/quit"
CMD_EXIT = "/exit"
QUIT_COMMANDS = frozenset({CMD_QUIT, CMD_EXIT})

# --- Fixed server texts ----------------------------------------------------
SYSTEM_SENDER = "系统消息"                                   # sender of join/leave lines
SYSTEM_PREFIX = SYSTEM_SENDER + ": "                         # prefix of status replies
TCP_WELCOME = "欢迎来到TCP聊天室！请输入您的用户名:"
GOODBYE = "再见！"
ERR_NAME_TAKEN = ERROR + "用户名已存在，请重新连接并使用其他用户名"
ERR_NAME_TAKEN_UDP = ERROR + "用户名已存在"
ERR_NAME_EMPTY = ERROR + "用户名不能为空"

TCP_HELP_LINES: List[str] = [
    "=== 聊天室命令帮助 ===",
    "/users - 查看在线用户列表",
    "/help - 显示此帮助信息",
    "/quit 或 /exit - 退出聊天室",
    "直接输入文字即可发送聊天消息",
]

UDP_HELP_LINES: List[str] = [
    "=== UDP聊天室命令帮助 ===",
    "/users - 查看在线用户列表",
    "/help - 显示此帮助信息",
    "/quit - 退出聊天室",
    "直接输入文字即可发送聊天消息",
]

TIME_FORMAT = "%H:%M:%S"


# --- Text builders ---------------------------------------------------------

def format_chat_line(sender: str, body: str, when: Optional[datetime] = None) -> str:
    """Render one broadcast line: ``[HH:MM:SS] <sender>: <body>``.

    Args:
        sender: display name (or :data:`SYSTEM_SENDER` for announcements).
        body: message text, sent verbatim.
        when: timestamp to render; defaults to server-local *now*.
    """
    when = when or datetime.now()
    return f"[{when.strftime(TIME_FORMAT)}] {sender}: {body}"


def login_success(name: str) -> str:
    return f"{SUCCESS}登录成功！欢迎 {name}"


def register_success(name: str) -> str:
    return f"{SUCCESS}注册成功！欢迎 {name}"


def address_in_use(name: str) -> str:
    return f"{ERROR}该地址已注册为 {name}"


def join_notice(name: str) -> str:
    return f"{name} 加入了聊天室"


def leave_notice(name: str) -> str:
    return f"{name} 离开了聊天室"


def roster_text(names: Sequence[str]) -> str:
    """Status line listing every online user, e.g. ``系统消息: 当前在线用户 (2人): a b ``."""
    users = "".join(f"{n} " for n in names)
    return f"{SYSTEM_PREFIX}当前在线用户 ({len(names)}人): {users}"


def unknown_command(command: str, with_hint: bool = True) -> str:
    hint = "，输入 /help 查看帮助" if with_hint else ""
    return f"未知命令: {command}{hint}"


# --- Datagram helpers ------------------------------------------------------

@dataclass(frozen=True)
class Datagram:
    """A decoded client datagram: which tag it carried and what followed it."""

    tag: str        # One of DATAGRAM_TAGS
    payload: str    # Everything after the tag, untouched


def make_datagram(tag: str, payload: str = "") -> bytes:
    """Tag + payload ⟶ UTF-8 bytes suitable for ``socket.sendto()``."""
    return (tag + payload).encode(ENCODING)


def parse_datagram(data: bytes) -> Optional[Datagram]:
    """Inverse of :func:`make_datagram`; ``None`` when no known tag matches."""
    text = data.decode(ENCODING, errors="replace")
    for tag in DATAGRAM_TAGS:
        if text.startswith(tag):
            return Datagram(tag, text[len(tag):])
    return None


# --- Stream helpers --------------------------------------------------------

def encode_line(line: str) -> bytes:
    """One logical line ⟶ newline-terminated UTF-8 bytes."""
    return (line + "\n").encode(ENCODING)


def strip_eol(line: str) -> str:
    """Drop the trailing ``\\n`` / ``\\r\\n`` a line-reader leaves behind."""
    return line.rstrip("\r\n")
