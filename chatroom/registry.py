#!/usr/bin/env python3
"""Session registry: who is online and how to reach them.

One :class:`SessionRegistry` is owned by each server instance.  It maps a
display name to a :class:`~chatroom.handles.DeliveryHandle` and keeps the
reverse direction (handle key ➜ name) in step, so the datagram server can ask
"who sent this?" without a second, independently-updated table.
"""

from __future__ import annotations

import threading                                          # One lock guards both directions
from typing import Dict, Hashable, List, Optional, Tuple  # Typing helpers

from .handles import DeliveryHandle

# --- Registration errors (caught at the transport edge) ---------------------

class RegistryError(Exception):
    """Base class for rejected registrations."""


class NameTaken(RegistryError):
    """An active session already uses this exact name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"name already registered: {name!r}")
        self.name = name


class InvalidName(RegistryError):
    """Empty or whitespace-only name."""


class AddressInUse(RegistryError):
    """The handle's peer is already registered under another name."""

    def __init__(self, key: Hashable, name: str) -> None:
        super().__init__(f"{key!r} already registered as {name!r}")
        self.key = key
        self.name = name

# --- The registry ------------------------------------------------------------

class SessionRegistry:
    """Thread-safe name ⇄ handle table; insertion ordered."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_name: Dict[str, DeliveryHandle] = {}   # name ➜ handle (insertion ordered)
        self._by_key: Dict[Hashable, str] = {}          # handle key ➜ name (UDP: address)

    def register(self, name: str, handle: DeliveryHandle) -> str:
        """Insert a session and return the stored (trimmed) name.

        Raises :class:`InvalidName`, :class:`NameTaken` or :class:`AddressInUse`;
        the registry is left untouched in every failure case.
        """
        name = name.strip()                     # Trim only; case is significant
        if not name:
            raise InvalidName("name must not be empty")
        with self._lock:
            if name in self._by_name:           # Exact-match uniqueness
                raise NameTaken(name)
            owner = self._by_key.get(handle.key)  # Same peer under another name?
            if owner is not None:
                raise AddressInUse(handle.key, owner)
            self._by_name[name] = handle        # Both directions in one step
            self._by_key[handle.key] = name
        return name

    def unregister(self, name: str, handle: Optional[DeliveryHandle] = None) -> bool:
        """Remove ``name``; if ``handle`` is given, only while it is still bound to it.

        Unknown names are a no-op.  Returns whether anything was removed.
        """
        with self._lock:
            current = self._by_name.get(name)
            # A stale worker must not evict a newer session that reused the name.
            if current is None or (handle is not None and current is not handle):
                return False
            del self._by_name[name]
            self._by_key.pop(current.key, None)
            return True

    # ---------------------------------------------------------------- queries
    def lookup_all(self) -> List[Tuple[str, DeliveryHandle]]:
        """Snapshot of every session, safe to iterate while others mutate the registry."""
        with self._lock:
            return list(self._by_name.items())

    def names(self) -> List[str]:
        with self._lock:
            return list(self._by_name)

    def get(self, name: str) -> Optional[DeliveryHandle]:
        with self._lock:
            return self._by_name.get(name)

    def name_for(self, key: Hashable) -> Optional[str]:
        """Reverse lookup: peer key (e.g. a UDP address) ➜ registered name."""
        with self._lock:
            return self._by_key.get(key)

    def count(self) -> int:
        with self._lock:
            return len(self._by_name)

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._by_name
