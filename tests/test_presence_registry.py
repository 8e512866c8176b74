import threading

import pytest

from app.core.errors import Unauthorized
from app.schemas.chat import Coordinates
from app.services.presence_registry import PresenceRegistry


@pytest.fixture
def registry():
    return PresenceRegistry()


def test_register_and_lookup(registry):
    entry = registry.register("c1", "alice", "Alice")

    assert entry.user_id == "alice"
    assert registry.get("c1") == entry
    assert registry.connections_for_user("alice") == {"c1"}


@pytest.mark.parametrize("user_id", [None, ""])
def test_register_without_identity_is_unauthorized(registry, user_id):
    with pytest.raises(Unauthorized):
        registry.register("c1", user_id, "Nobody")

    assert registry.get("c1") is None
    assert len(registry) == 0


def test_register_overwrites_same_connection_id(registry):
    registry.register("c1", "alice", "Alice")
    registry.register("c1", "bob", "Bob")

    assert registry.get("c1").user_id == "bob"
    assert registry.connections_for_user("alice") == set()
    assert registry.connections_for_user("bob") == {"c1"}
    assert len(registry) == 1


def test_user_with_multiple_connections(registry):
    registry.register("c1", "alice", "Alice")
    registry.register("c2", "alice", "Alice")

    assert registry.connections_for_user("alice") == {"c1", "c2"}


def test_update_coords_only_touches_that_connection(registry):
    registry.register("c1", "alice", "Alice")
    registry.register("c2", "alice", "Alice")

    registry.update_coords("c1", Coordinates(lat=47.0, lng=8.0))

    assert registry.get("c1").coords == Coordinates(lat=47.0, lng=8.0)
    assert registry.get("c2").coords is None


def test_update_coords_unknown_connection_is_noop(registry):
    assert registry.update_coords("ghost", Coordinates(lat=1.0, lng=1.0)) is None
    assert registry.get("ghost") is None


def test_unregister_is_idempotent(registry):
    registry.register("c1", "alice", "Alice")

    registry.unregister("c1")
    registry.unregister("c1")

    assert registry.get("c1") is None
    assert registry.connections_for_user("alice") == set()


def test_unknown_user_has_no_connections(registry):
    assert registry.connections_for_user("nobody") == set()


def test_connections_for_user_returns_a_copy(registry):
    registry.register("c1", "alice", "Alice")
    ids = registry.connections_for_user("alice")
    ids.add("forged")

    assert registry.connections_for_user("alice") == {"c1"}


def test_concurrent_register_and_unregister(registry):
    def churn(n):
        for i in range(200):
            cid = f"{n}-{i}"
            registry.register(cid, f"user-{n}", "U")
            registry.update_coords(cid, Coordinates(lat=0.0, lng=0.0))
            if i % 2:
                registry.unregister(cid)

    threads = [threading.Thread(target=churn, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(registry) == 8 * 100
    for n in range(8):
        assert len(registry.connections_for_user(f"user-{n}")) == 100
