import pytest

from errors import InputValidationError, NotFoundError, PersistenceError
from guest_itinerary_service import GuestItineraryStore, GuestSessionRegistry, TEMP_ID_PREFIX
from session_service import GUEST_ITINERARIES_KEY, MemoryStorage


def _itinerary(destination="Goa", tier="Budget", total_cost=8000):
    return {
        "destination": destination,
        "tier": tier,
        "total_cost": total_cost,
        "days_json": [
            {"day": 1, "date": "Saturday", "activities": [{"name": "Beach Walk", "venue": "Baga Beach",
                                                           "location": "North Goa", "cost": 0}]},
            {"day": 2, "date": "Sunday", "activities": []},
        ],
    }


def test_add_then_get_round_trip(database):
    store = GuestItineraryStore(database, MemoryStorage())
    payload = _itinerary()
    itinerary_id = store.add_guest_itinerary(payload)

    items = store.get_guest_itineraries()
    assert len(items) == 1
    item = items[0]
    assert item.id == itinerary_id
    assert (item.destination, item.tier, item.total_cost) == ("Goa", "Budget", 8000)
    assert item.days_json == payload["days_json"]

    row = database.table("guest_itineraries").single(id=itinerary_id)
    assert row["session_id"] == store.session_id
    assert row["duration_days"] == 2


def test_remote_failure_keeps_local_record_with_temp_id(database, break_writes):
    break_writes(database.table("guest_itineraries"))
    store = GuestItineraryStore(database, MemoryStorage())

    first = store.add_guest_itinerary(_itinerary(tier="Budget"))
    second = store.add_guest_itinerary(_itinerary(tier="Luxe"))

    assert first.startswith(TEMP_ID_PREFIX)
    assert second.startswith(TEMP_ID_PREFIX)
    assert first != second
    assert [i.tier for i in store.get_guest_itineraries()] == ["Budget", "Luxe"]


def test_returned_list_is_a_copy(database):
    store = GuestItineraryStore(database, MemoryStorage())
    store.add_guest_itinerary(_itinerary())
    store.get_guest_itineraries()[0].days_json.clear()
    assert len(store.get_guest_itineraries()[0].days_json) == 2


def test_load_restores_from_remote_and_mirror(database):
    storage = MemoryStorage()
    store = GuestItineraryStore(database, storage)
    store.add_guest_itinerary(_itinerary(tier="Budget"))
    store.add_guest_itinerary(_itinerary(tier="Balanced"))

    reopened = GuestItineraryStore(database, storage)
    assert reopened.session_id == store.session_id
    assert [i.tier for i in reopened.load()] == ["Budget", "Balanced"]


def test_load_falls_back_to_mirror_when_remote_unavailable(database, monkeypatch, break_writes):
    storage = MemoryStorage()
    break_writes(database.table("guest_itineraries"))
    GuestItineraryStore(database, storage).add_guest_itinerary(_itinerary())

    def unavailable(**filters):
        raise PersistenceError("connection refused")

    monkeypatch.setattr(database.table("guest_itineraries"), "select", unavailable)
    loaded = GuestItineraryStore(database, storage).load()
    assert len(loaded) == 1
    assert loaded[0].id.startswith(TEMP_ID_PREFIX)


def test_migration_moves_everything_and_clears(database):
    storage = MemoryStorage()
    store = GuestItineraryStore(database, storage)
    for tier, cost in (("Budget", 8000), ("Balanced", 18000), ("Luxe", 45000)):
        store.add_guest_itinerary(_itinerary(tier=tier, total_cost=cost))

    assert store.migrate_guest_itineraries_to_user("user-9") == 3
    assert store.get_guest_itineraries() == []
    assert storage.get_item(GUEST_ITINERARIES_KEY) is None

    rows = database.table("itineraries").select(user_id="user-9")
    assert sorted((r["tier"], r["total_cost"]) for r in rows) == [
        ("Balanced", 18000), ("Budget", 8000), ("Luxe", 45000)]
    assert all(r["days_json"] == _itinerary()["days_json"] for r in rows)


def test_migration_failure_aborts_and_keeps_guest_state(database, break_writes):
    store = GuestItineraryStore(database, MemoryStorage())
    store.add_guest_itinerary(_itinerary())
    break_writes(database.table("itineraries"))

    with pytest.raises(PersistenceError):
        store.migrate_guest_itineraries_to_user("user-9")

    assert len(store.get_guest_itineraries()) == 1
    assert database.table("itineraries").select(user_id="user-9") == []


def test_migration_with_nothing_to_move(database):
    store = GuestItineraryStore(database, MemoryStorage())
    assert store.migrate_guest_itineraries_to_user("user-9") == 0
    assert database.table("itineraries").select() == []


def test_migration_retry_does_not_duplicate(database):
    storage = MemoryStorage()
    store = GuestItineraryStore(database, storage)
    store.add_guest_itinerary(_itinerary())
    store.migrate_guest_itineraries_to_user("user-9")

    # Another client context still holding the same guest records
    stale = GuestItineraryStore(database, MemoryStorage(), session_id=store.session_id)
    stale.load()
    assert stale.migrate_guest_itineraries_to_user("user-9") == 0
    assert len(database.table("itineraries").select(user_id="user-9")) == 1


def test_registry_reuses_store_per_session(database):
    registry = GuestSessionRegistry(database)
    store = registry.get()
    assert registry.get(store.session_id) is store
    assert registry.get().session_id != store.session_id


def test_registry_rejects_malformed_session_ids(database):
    with pytest.raises(InputValidationError):
        GuestSessionRegistry(database).get("../../etc/passwd")


def test_registry_file_storage_restores_session(database, tmp_path):
    store = GuestSessionRegistry(database, str(tmp_path)).get()
    store.add_guest_itinerary(_itinerary())

    restored = GuestSessionRegistry(database, str(tmp_path)).get(store.session_id)
    assert restored.session_id == store.session_id
    assert len(restored.get_guest_itineraries()) == 1


def test_get_single_itinerary_is_scoped_to_the_session(database):
    store = GuestItineraryStore(database, MemoryStorage())
    itinerary_id = store.add_guest_itinerary(_itinerary(tier="Luxe"))

    item = store.get_guest_itinerary(itinerary_id)
    assert (item.tier, item.duration_days) == ("Luxe", 2)

    other = GuestItineraryStore(database, MemoryStorage())
    other.load()
    with pytest.raises(NotFoundError):
        other.get_guest_itinerary(itinerary_id)


def test_registry_evicts_least_recently_used_sessions(database):
    registry = GuestSessionRegistry(database, max_sessions=2)
    first = registry.get()
    first.add_guest_itinerary(_itinerary())
    second = registry.get()
    registry.get(first.session_id)
    registry.get()

    assert len(registry) == 2
    assert registry.get(first.session_id) is first

    rebuilt = registry.get(second.session_id)
    assert rebuilt is not second
    assert rebuilt.session_id == second.session_id
    assert len(registry) == 2


def test_evicted_session_is_rebuilt_from_remote_rows(database):
    registry = GuestSessionRegistry(database, max_sessions=1)
    store = registry.get()
    itinerary_id = store.add_guest_itinerary(_itinerary())
    registry.get()

    restored = registry.get(store.session_id)
    assert restored is not store
    assert [i.id for i in restored.get_guest_itineraries()] == [itinerary_id]
