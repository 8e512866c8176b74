import time

import pytest

from app.core.errors import StoreUnavailable
from app.schemas.chat import Coordinates
from app.services.geo import haversine_m
from app.services.location_store import LocationStore
from app.services.message_store import MessageStore

ORIGIN = Coordinates(lat=47.3769, lng=8.5417)


# -----------------------------
# Location store
# -----------------------------

def test_upsert_creates_then_updates(location_store):
    location_store.upsert_location("alice", ORIGIN, "Alice")
    assert location_store.get_location("alice") == ORIGIN

    moved = Coordinates(lat=47.0, lng=8.0)
    location_store.upsert_location("alice", moved)
    assert location_store.get_location("alice") == moved

    [me] = location_store.near(moved, 10)
    assert me.display_name == "Alice"


def test_get_location_unknown_user(location_store):
    assert location_store.get_location("nobody") is None


def test_near_is_boundary_inclusive(location_store):
    other = Coordinates(lat=ORIGIN.lat + 0.01, lng=ORIGIN.lng + 0.01)
    location_store.upsert_location("bob", other, "Bob")
    exact = haversine_m(ORIGIN.lat, ORIGIN.lng, other.lat, other.lng)

    assert [u.user_id for u in location_store.near(ORIGIN, exact)] == ["bob"]
    assert location_store.near(ORIGIN, exact - 0.5) == []


def test_near_includes_self_and_sorts_by_distance(location_store):
    location_store.upsert_location("me", ORIGIN, "Me")
    location_store.upsert_location("far", Coordinates(lat=ORIGIN.lat + 0.02, lng=ORIGIN.lng), "Far")
    location_store.upsert_location("close", Coordinates(lat=ORIGIN.lat + 0.001, lng=ORIGIN.lng), "Close")
    location_store.upsert_location("away", Coordinates(lat=48.5, lng=9.5), "Away")

    nearby = location_store.near(ORIGIN, 3000)

    assert [u.user_id for u in nearby] == ["me", "close", "far"]
    assert nearby[0].distance_meters == 0


def test_near_matches_exact_great_circle_filter(location_store):
    points = {
        f"u{i}": Coordinates(lat=ORIGIN.lat + dlat, lng=ORIGIN.lng + dlng)
        for i, (dlat, dlng) in enumerate(
            [(0.0, 0.0), (0.005, 0.005), (0.02, 0.0), (0.0, 0.04), (-0.018, 0.02), (0.1, 0.1)]
        )
    }
    for uid, coords in points.items():
        location_store.upsert_location(uid, coords)

    for radius in (100, 1000, 2500, 5000):
        expected = {
            uid for uid, c in points.items()
            if haversine_m(ORIGIN.lat, ORIGIN.lng, c.lat, c.lng) <= radius
        }
        assert {u.user_id for u in location_store.near(ORIGIN, radius)} == expected


def test_near_across_antimeridian(location_store):
    location_store.upsert_location("east", Coordinates(lat=0.0, lng=179.999), "East")
    location_store.upsert_location("west", Coordinates(lat=0.0, lng=-179.999), "West")

    nearby = location_store.near(Coordinates(lat=0.0, lng=179.999), 1000)

    assert {u.user_id for u in nearby} == {"east", "west"}


def test_location_store_unavailable(broken_session_factory):
    store = LocationStore(broken_session_factory)

    with pytest.raises(StoreUnavailable):
        store.near(ORIGIN, 1000)
    with pytest.raises(StoreUnavailable):
        store.upsert_location("alice", ORIGIN)


# -----------------------------
# Message store
# -----------------------------

def test_create_assigns_id_and_timestamp(message_store):
    msg = message_store.create("alice", "Alice", "hello")

    assert msg.id is not None
    assert msg.sender_id == "alice"
    assert msg.text == "hello"
    assert msg.created_at is not None


def test_find_by_sender_in_orders_oldest_first(message_store):
    first = message_store.create("alice", "Alice", "one")
    time.sleep(0.01)
    message_store.create("carol", "Carol", "not mine")
    second = message_store.create("bob", "Bob", "two")

    found = message_store.find_by_sender_in(["alice", "bob"])

    assert [m.id for m in found] == [first.id, second.id]


def test_find_by_sender_in_empty(message_store):
    message_store.create("alice", "Alice", "one")
    assert message_store.find_by_sender_in([]) == []


def test_delete_all_returns_count(message_store):
    for i in range(3):
        message_store.create("alice", "Alice", f"m{i}")

    assert message_store.delete_all() == 3
    assert message_store.find_by_sender_in(["alice"]) == []
    assert message_store.delete_all() == 0


def test_message_store_unavailable(broken_session_factory):
    store = MessageStore(broken_session_factory)

    with pytest.raises(StoreUnavailable):
        store.delete_all()
