import asyncio
import json
from datetime import date, datetime, timedelta, timezone

import jwt
import pytest

from database_service import Database
from errors import ImageSearchError, PersistenceError
from itinerary_service import DEMO_TIERS
from models.travel import ImageResult
from profile_service import ProfileService


class FakeLLM:
    """Stands in for LLMService; answers from a fixed payload, a responder function, or raises."""

    def __init__(self, response=None, responder=None, error=None, delay=0.0, configured=True):
        self.response = response
        self.responder = responder
        self.error = error
        self.delay = delay
        self.configured = configured
        self.calls = []

    async def complete_json(self, system_prompt, user_prompt, temperature=0.7, max_tokens=None, json_object=True):
        self.calls.append({"system": system_prompt, "user": user_prompt, "json_object": json_object})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(system_prompt, user_prompt)
        if isinstance(self.response, str):
            return self.response
        return json.dumps(self.response)


class FakeImages:
    """Destination photo search that fails for the names listed in ``failing``."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.queries = []

    def find_destination_image(self, destination_name, country=""):
        self.queries.append(destination_name)
        if destination_name in self.failing:
            raise ImageSearchError(f"No photos found for {destination_name}")
        return ImageResult(
            image_url=f"https://images.example.com/{destination_name.lower()}.jpg",
            photographer="Test Photographer",
            photographer_url="https://example.com/photographer",
        )


def make_token(user_id, secret, audience="authenticated", expires_in=timedelta(hours=1)):
    """A signed access token shaped like the ones the auth provider issues."""
    claims = {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in}
    if audience:
        claims["aud"] = audience
    return jwt.encode(claims, secret, algorithm="HS256")


@pytest.fixture
def database():
    return Database()


@pytest.fixture
def break_writes(monkeypatch):
    """Make every write to the given table fail the way an unreachable database does."""
    def breaker(table):
        def fail(*args, **kwargs):
            raise PersistenceError(f"{table.name} is unavailable")
        for method in ("insert", "update", "delete"):
            monkeypatch.setattr(table, method, fail)
        return table
    return breaker


@pytest.fixture
def profiles(database):
    return ProfileService(database)


@pytest.fixture
def completed_profile(profiles):
    profiles.upsert("user-1", {
        "start_city": "Mumbai",
        "destination_city": "Goa",
        "trip_start_date": date(2026, 11, 6),
        "trip_end_date": date(2026, 11, 9),
        "travel_purpose": "Couple",
        "budget_max": 40000,
        "accommodation_style": "mid-range",
        "dining_preference": "mix",
        "travel_pace": "moderate",
        "preferred_activities": ["Beaches", "Food Tours"],
        "special_interests": ["Seafood", "Photography"],
        "profile_completed": True,
    })
    return profiles.get("user-1")


@pytest.fixture
def tiers_payload():
    return {"tiers": json.loads(json.dumps(DEMO_TIERS))}
