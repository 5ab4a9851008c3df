"""Tests for the session registry."""
import threading

import pytest

from chatroom.registry import AddressInUse, InvalidName, NameTaken, SessionRegistry
from .conftest import FakeHandle


@pytest.fixture
def registry():
    return SessionRegistry()


@pytest.mark.parametrize("n", [0, 1, 5, 50])
def test_count_matches_distinct_registrations(registry, n):
    for i in range(n):
        registry.register(f"user{i}", FakeHandle())
    assert registry.count() == n
    assert len(registry) == n


def test_duplicate_name_rejected_and_state_unchanged(registry):
    first = FakeHandle()
    registry.register("alice", first)
    before = registry.lookup_all()

    with pytest.raises(NameTaken) as info:
        registry.register("alice", FakeHandle())

    assert info.value.name == "alice"
    assert registry.lookup_all() == before
    assert registry.get("alice") is first


def test_names_are_trimmed_and_case_sensitive(registry):
    assert registry.register("  bob  ", FakeHandle()) == "bob"
    assert "bob" in registry
    with pytest.raises(NameTaken):
        registry.register("bob ", FakeHandle())
    registry.register("Bob", FakeHandle())
    assert registry.count() == 2


@pytest.mark.parametrize("name", ["", "   ", "\t"])
def test_blank_name_rejected(registry, name):
    with pytest.raises(InvalidName):
        registry.register(name, FakeHandle())
    assert registry.count() == 0


def test_same_handle_cannot_hold_two_names(registry):
    handle = FakeHandle()
    registry.register("alice", handle)
    with pytest.raises(AddressInUse) as info:
        registry.register("alias", handle)
    assert info.value.name == "alice"
    assert registry.names() == ["alice"]


def test_unregister_unknown_is_noop(registry):
    registry.register("alice", FakeHandle())
    before = registry.lookup_all()
    assert registry.unregister("ghost") is False
    assert registry.lookup_all() == before


def test_unregister_keeps_reverse_lookup_consistent(registry):
    handle = FakeHandle()
    registry.register("alice", handle)
    assert registry.name_for(handle.key) == "alice"

    assert registry.unregister("alice") is True
    assert registry.name_for(handle.key) is None
    # The freed handle may register again under a new name.
    registry.register("alice2", handle)
    assert registry.name_for(handle.key) == "alice2"


def test_unregister_with_stale_handle_leaves_new_session(registry):
    old, new = FakeHandle(), FakeHandle()
    registry.register("alice", old)
    registry.unregister("alice")
    registry.register("alice", new)

    assert registry.unregister("alice", old) is False
    assert registry.get("alice") is new


def test_lookup_all_is_insertion_ordered_snapshot(registry):
    for name in ["c", "a", "b"]:
        registry.register(name, FakeHandle())
    snapshot = registry.lookup_all()
    registry.unregister("a")
    assert [name for name, _ in snapshot] == ["c", "a", "b"]
    assert registry.names() == ["c", "b"]


def test_concurrent_registration_of_one_name_has_single_winner(registry):
    winners, losers = [], []
    barrier = threading.Barrier(16)

    def attempt():
        barrier.wait()
        try:
            registry.register("same", FakeHandle())
            winners.append(1)
        except NameTaken:
            losers.append(1)

    threads = [threading.Thread(target=attempt) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(winners) == 1
    assert len(losers) == 15
    assert registry.count() == 1
