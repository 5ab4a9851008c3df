#!/usr/bin/env python3
"""Broadcast engine: fan one timestamped line out to every registered session.

Joins, leaves and broadcasts share one coarse re-entrant lock, so a join is
never split by another announcement.  Peers whose delivery fails are dropped
after the pass, silently (no leave announcement for them), and their handles
closed so a TCP worker still reading on them unwinds.
"""

from __future__ import annotations

import threading                          # Coarse engine lock
from datetime import datetime             # Injectable wall clock
from typing import Callable, List, Optional

from .handles import DeliveryHandle
from .protocol import SYSTEM_SENDER, format_chat_line, join_notice, leave_notice, roster_text
from .registry import SessionRegistry
from .util import LOG


class BroadcastEngine:
    """Formats and delivers chat lines for one server's registry."""

    def __init__(
        self,
        registry: SessionRegistry,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.registry = registry                  # Shared with the owning server
        self.clock = clock                        # datetime.now, or a fixed stub in tests
        self._lock = threading.RLock()            # Re-entrant: join/leave call announce()

    # ---------------------------------------------------------------- fan-out
    def broadcast(self, sender: str, body: str) -> List[str]:
        """Deliver ``[HH:MM:SS] sender: body`` to every session, the sender's included.

        Returns the names dropped because their delivery failed.
        """
        line = format_chat_line(sender, body, self.clock())
        with self._lock:
            failed = [
                (name, handle)
                for name, handle in self.registry.lookup_all()   # Snapshot, not the live dict
                if not handle.deliver(line)                      # No retry: one strike
            ]
            # Snapshot-then-diff: removals only after the whole pass.
            for name, handle in failed:
                if self.registry.unregister(name, handle):      # Silent: no leave line
                    LOG.info("Dropped unreachable client %s", name)
                handle.close()                                  # TCP worker sees EOF
        return [name for name, _ in failed]

    def announce(self, text: str) -> List[str]:
        """System line (join/leave notices), sent as sender 系统消息."""
        return self.broadcast(SYSTEM_SENDER, text)

    # ---------------------------------------------------------------- membership
    def join(self, name: str, handle: DeliveryHandle, welcome: Optional[Callable[[str], str]] = None) -> str:
        """Register ``name`` then announce it; registry errors propagate untouched.

        ``welcome`` renders the line sent to the newcomer before the announcement,
        so a client always sees its login reply first.  The newcomer is already
        registered when the announcement goes out and therefore receives it too.
        """
        with self._lock:
            name = self.registry.register(name, handle)          # May raise NameTaken & co.
            if welcome is not None:
                handle.deliver(welcome(name))                    # SUCCESS:... before anything else
            LOG.info("%s joined, %d online", name, self.registry.count())
            self.announce(join_notice(name))
        return name

    def leave(self, name: str, handle: Optional[DeliveryHandle] = None) -> bool:
        """Unregister ``name`` and announce it; no announcement if it was not registered."""
        with self._lock:
            if not self.registry.unregister(name, handle):      # Already dropped / never joined
                return False
            LOG.info("%s left, %d online", name, self.registry.count())
            self.announce(leave_notice(name))                    # Leaver is gone: not a recipient
        return True

    def roster(self) -> str:
        return roster_text(self.registry.names())
