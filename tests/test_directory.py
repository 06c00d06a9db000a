from datetime import datetime, timedelta, timezone

import pytest

from safety_analytics.db.directory import DEMO_USERS, DirectoryStore
from safety_analytics.utils.geodesy import distance_meters

START = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """A controllable clock for the directory store."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return DirectoryStore(clock=clock)


def test_upsert_then_get_returns_written_location(store, clock):
    before = clock()
    assert store.upsert("alice", 40.7580, -73.9855) is True

    entry = store.get("alice")
    assert (entry.latitude, entry.longitude) == (40.7580, -73.9855)
    assert entry.last_seen >= before


def test_upsert_with_real_clock_uses_current_time():
    store = DirectoryStore()
    before = datetime.now(timezone.utc)
    store.upsert("alice", 1, 2)
    assert store.get("alice").last_seen >= before


def test_upsert_overwrites_existing_entry(store, clock):
    store.upsert("alice", 10, 10)
    clock.advance(minutes=5)
    store.upsert("alice", 11, 12)

    entry = store.get("alice")
    assert (entry.latitude, entry.longitude) == (11, 12)
    assert entry.last_seen == START + timedelta(minutes=5)
    assert store.count() == 1


def test_upsert_uses_explicit_timestamp(store):
    stamp = START - timedelta(hours=3)
    store.upsert("alice", 1, 1, timestamp=stamp)
    assert store.get("alice").last_seen == stamp


def test_upsert_coerces_numeric_strings(store):
    assert store.upsert("alice", "26.85", "80.88")
    assert store.get("alice").latitude == 26.85


@pytest.mark.parametrize("username,lat,lng", [
    ("", 1, 1),
    ("   ", 1, 1),
    (None, 1, 1),
    ("alice", None, 1),
    ("alice", 1, None),
    ("alice", "north", 1),
    ("alice", 95, 1),
    ("alice", 1, -200),
    ("alice", float("inf"), 1),
])
def test_upsert_rejects_invalid_data(store, username, lat, lng):
    assert store.upsert(username, lat, lng) is False
    assert store.count() == 0


def test_upsert_accepts_zero_coordinates(store):
    assert store.upsert("null-island", 0, 0) is True
    assert store.get("null-island").latitude == 0


def test_find_nearby_excludes_by_identity_and_radius(store):
    store.upsert("A", 0, 0)
    store.upsert("B", 0, 0.001)
    store.upsert("C", 10, 10)

    results = store.find_nearby(0, 0, 200, exclude="A")

    assert [result.item.username for result in results] == ["B"]
    assert results[0].distance == 111


def test_find_nearby_matches_brute_force_and_is_sorted(store):
    for username, lat, lng in DEMO_USERS:
        store.upsert(username, lat, lng)
    center = (40.7550, -73.9860)

    for radius in (0, 100, 350, 500, 1000):
        results = store.find_nearby(*center, radius)
        expected = {username for username, lat, lng in DEMO_USERS
                    if distance_meters(*center, lat, lng) <= radius}

        assert {result.item.username for result in results} == expected
        distances = [result.distance for result in results]
        assert distances == sorted(distances)


def test_find_nearby_never_returns_excluded_user_even_at_center(store):
    store.upsert("sender", 5, 5)
    store.upsert("other", 5, 5)

    results = store.find_nearby(5, 5, 10, exclude="sender")
    assert [result.item.username for result in results] == ["other"]
    assert results[0].distance == 0


def test_find_nearby_radius_is_inclusive(store):
    store.upsert("B", 0, 0.001)
    assert len(store.find_nearby(0, 0, 111)) == 1
    assert store.find_nearby(0, 0, 110) == []


def test_find_nearby_ties_keep_insertion_order(store):
    store.upsert("first", 0, 0.001)
    store.upsert("second", 0, -0.001)
    store.upsert("third", 0.001, 0)

    results = store.find_nearby(0, 0, 500)
    assert [result.item.username for result in results] == ["first", "second", "third"]


@pytest.mark.parametrize("lat,lng", [(None, 0), ("abc", 0), (0, float("nan"))])
def test_find_nearby_invalid_center_returns_empty(store, lat, lng, caplog):
    store.upsert("A", 0, 0)
    assert store.find_nearby(lat, lng, 1000) == []
    assert "Invalid coordinates" in caplog.text


def test_all_remove_and_count(store):
    store.upsert("alice", 1, 1)
    store.upsert("bob", 2, 2)

    assert {entry.username for entry in store.all()} == {"alice", "bob"}
    assert store.remove("alice") is True
    assert store.remove("alice") is False
    assert store.get("alice") is None
    assert store.count() == len(store) == 1
    assert "bob" in store


def test_evict_older_than_removes_only_stale_entries(store, clock):
    max_age = timedelta(hours=24)
    store.upsert("stale", 1, 1, timestamp=START - timedelta(hours=25))
    store.upsert("boundary", 1, 1, timestamp=START - max_age)
    store.upsert("fresh", 1, 1, timestamp=START - timedelta(hours=1))

    assert store.evict_older_than(max_age) == 1
    assert store.get("stale") is None
    assert store.get("boundary") is not None
    assert store.get("fresh") is not None

    # Nothing else is stale without the clock moving
    assert store.evict_older_than(max_age) == 0
    assert store.count() == 2


def test_evict_older_than_follows_the_clock(store, clock):
    store.upsert("alice", 1, 1)
    clock.advance(hours=23)
    assert store.evict_older_than(timedelta(hours=24)) == 0

    clock.advance(hours=2)
    assert store.evict_older_than(timedelta(hours=24)) == 1
    assert store.count() == 0


def test_seed_registers_demo_users(store):
    assert store.seed() == len(DEMO_USERS)
    assert store.get("Sarah_M").latitude == 40.7580
