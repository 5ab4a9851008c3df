#!/usr/bin/env python3
"""Per-peer command dispatcher.

Decides what one inbound line means; the transport carries the decision out.
Matching is exact and case-sensitive: anything starting with ``/`` is a
command, everything else is chat.
"""

from __future__ import annotations

import enum                                   # Action discriminator
from dataclasses import dataclass, field      # Lightweight decision record
from typing import List, Sequence

from .broadcast import BroadcastEngine
from .protocol import CMD_HELP, CMD_USERS, QUIT_COMMANDS, unknown_command

# --- Decision types --------------------------------------------------------

class ActionKind(enum.Enum):
    BROADCAST = "broadcast"   # chat line, fan out via the engine
    REPLY = "reply"           # lines for the requesting peer only
    QUIT = "quit"             # end this peer's session


@dataclass
class Action:
    kind: ActionKind
    body: str = ""                                      # BROADCAST: the chat text
    lines: List[str] = field(default_factory=list)     # REPLY: one entry per line/datagram

# --- Dispatcher ------------------------------------------------------------

class CommandDispatcher:
    """Routes a line to broadcast / reply / quit."""

    def __init__(self, engine: BroadcastEngine, help_lines: Sequence[str], unknown_hint: bool = True) -> None:
        self.engine = engine                    # For the /users roster
        self.help_lines = list(help_lines)      # TCP and UDP ship different help texts
        self.unknown_hint = unknown_hint        # TCP appends "输入 /help 查看帮助"

    def dispatch(self, line: str) -> Action:
        # ---- plain chat ----
        if not line.startswith("/"):
            return Action(ActionKind.BROADCAST, body=line)

        # ---- known commands (exact match only) ----
        if line == CMD_USERS:
            return Action(ActionKind.REPLY, lines=[self.engine.roster()])
        if line == CMD_HELP:
            return Action(ActionKind.REPLY, lines=list(self.help_lines))
        if line in QUIT_COMMANDS:
            return Action(ActionKind.QUIT)

        # ---- anything else: tell the sender, touch nothing ----
        return Action(ActionKind.REPLY, lines=[unknown_command(line, self.unknown_hint)])
