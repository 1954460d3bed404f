import asyncio
import json

import pytest

from errors import (
    InputValidationError, LLMError, LLMNotConfiguredError, NotFoundError, PersistenceError, SchemaError
)
from guest_itinerary_service import GuestItineraryStore
from itinerary_service import (
    DEFAULT_PRICE_BANDS, ItineraryGenerationService, ItineraryService, build_prompt, demo_tiers,
    price_bands, validate_tiers
)
from models.travel import TIER_NAMES
from session_service import MemoryStorage
from tests.conftest import FakeLLM


def _service(database, profiles, llm, timeout=5):
    return ItineraryGenerationService(llm, ItineraryService(database), profiles, timeout_seconds=timeout)


def _assert_three_two_day_tiers(tiers):
    assert [t["name"] for t in tiers] == list(TIER_NAMES)
    for tier in tiers:
        assert len(tier["days"]) == 2
        assert tier["totalCost"] >= 0
        assert sum(a["cost"] for d in tier["days"] for a in d["activities"]) >= 0
        assert tier["id"]


def test_demo_tiers_are_deterministic():
    first = [t.to_json() for t in demo_tiers()]
    second = [t.to_json() for t in demo_tiers()]
    assert json.dumps(first, sort_keys=True) == json.dumps(second, sort_keys=True)
    assert [t["totalCost"] for t in first] == [8000, 18000, 45000]


def test_validate_tiers_sorts_and_rejects_bad_shapes(tiers_payload):
    tiers_payload["tiers"].reverse()
    assert [t.name for t in validate_tiers(tiers_payload)] == list(TIER_NAMES)

    with pytest.raises(SchemaError):
        validate_tiers({"plans": []})
    with pytest.raises(SchemaError):
        validate_tiers({"tiers": tiers_payload["tiers"][:2]})

    one_day = json.loads(json.dumps(tiers_payload))
    one_day["tiers"][0]["days"] = one_day["tiers"][0]["days"][:1]
    with pytest.raises(SchemaError):
        validate_tiers(one_day)


def test_price_bands_follow_profile_budget(completed_profile):
    assert price_bands(None) == DEFAULT_PRICE_BANDS
    # budget 20,000 - 40,000, so the midpoint is 30,000
    assert price_bands(completed_profile) == {
        "Budget": "around 12,000", "Balanced": "around 21,000", "Luxe": "around 36,000"}


def test_prompt_uses_profile_over_brief(completed_profile):
    prompt = build_prompt("Goa", "backpacking trip", completed_profile)
    assert "romantic couple" in prompt
    assert "Seafood, Photography" in prompt
    assert "backpacking trip" not in prompt

    assert "Trip context: backpacking trip" in build_prompt("Goa", "backpacking trip")


def test_llm_generation_for_guest(database, profiles, tiers_payload):
    store = GuestItineraryStore(database, MemoryStorage())
    service = _service(database, profiles, FakeLLM(response=tiers_payload))

    result = asyncio.run(service.generate("Goa", trip_brief="beach weekend", guest_store=store))

    assert result["demoMode"] is False
    _assert_three_two_day_tiers(result["tiers"])
    assert [i.id for i in store.get_guest_itineraries()] == [t["id"] for t in result["tiers"]]
    assert database.table("itineraries").select() == []


def test_authenticated_generation_persists_and_upserts(database, profiles, completed_profile, tiers_payload):
    service = _service(database, profiles, FakeLLM(response=tiers_payload))

    first = asyncio.run(service.generate("Goa", user_id="user-1"))
    second = asyncio.run(service.generate("Goa", user_id="user-1"))

    _assert_three_two_day_tiers(first["tiers"])
    assert [t["id"] for t in first["tiers"]] == [t["id"] for t in second["tiers"]]
    assert len(database.table("itineraries").select(user_id="user-1")) == 3


def test_authenticated_save_failure_is_fatal(database, profiles, completed_profile, tiers_payload, break_writes):
    break_writes(database.table("itineraries"))
    service = _service(database, profiles, FakeLLM(response=tiers_payload))

    with pytest.raises(PersistenceError):
        asyncio.run(service.generate("Goa", user_id="user-1"))
    assert database.table("itineraries").select(user_id="user-1") == []


def test_demo_save_failure_is_fatal_too(database, profiles, completed_profile, break_writes):
    break_writes(database.table("itineraries"))
    llm = FakeLLM(error=LLMNotConfiguredError("OpenAI API key not configured"))

    with pytest.raises(PersistenceError):
        asyncio.run(_service(database, profiles, llm).generate("Goa", user_id="user-1"))


def test_unconfigured_llm_uses_demo(database, profiles):
    store = GuestItineraryStore(database, MemoryStorage())
    llm = FakeLLM(error=LLMNotConfiguredError("OpenAI API key not configured"))

    result = asyncio.run(_service(database, profiles, llm).generate("Jaipur", guest_store=store))

    assert result["demoMode"] is True
    _assert_three_two_day_tiers(result["tiers"])


def test_timeout_uses_demo(database, profiles, tiers_payload):
    store = GuestItineraryStore(database, MemoryStorage())
    llm = FakeLLM(response=tiers_payload, delay=1.0)

    result = asyncio.run(_service(database, profiles, llm, timeout=0.05).generate("Jaipur", guest_store=store))

    assert result["demoMode"] is True
    _assert_three_two_day_tiers(result["tiers"])


def test_connectivity_error_is_surfaced(database, profiles):
    store = GuestItineraryStore(database, MemoryStorage())
    llm = FakeLLM(error=LLMError("OpenAI API error: connection reset"))

    with pytest.raises(LLMError):
        asyncio.run(_service(database, profiles, llm).generate("Jaipur", guest_store=store))
    assert store.get_guest_itineraries() == []


def test_malformed_response_is_surfaced(database, profiles):
    store = GuestItineraryStore(database, MemoryStorage())
    llm = FakeLLM(response={"itinerary": "three tiers"})

    with pytest.raises(SchemaError):
        asyncio.run(_service(database, profiles, llm).generate("Jaipur", guest_store=store))


def test_destination_is_required(database, profiles):
    store = GuestItineraryStore(database, MemoryStorage())
    with pytest.raises(InputValidationError):
        asyncio.run(_service(database, profiles, FakeLLM()).generate("  ", guest_store=store))


def test_repository_get_and_delete_are_owner_scoped(database):
    repo = ItineraryService(database)
    tier = demo_tiers()[0]
    itinerary_id = repo.save_tier("user-1", "Goa", tier)

    assert repo.get("user-1", itinerary_id).days[0].activities[0].name == "Heritage Walk"
    with pytest.raises(NotFoundError):
        repo.get("user-2", itinerary_id)
    with pytest.raises(NotFoundError):
        repo.delete("user-2", itinerary_id)

    repo.delete("user-1", itinerary_id)
    assert repo.list_for_user("user-1") == []
