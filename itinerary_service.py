import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from config import settings
from database_service import Database
from errors import InputValidationError, NotFoundError, SchemaError
from fallback import recover_on_timeout_or_unconfigured, with_fallback
from guest_itinerary_service import GuestItineraryStore
from llm_service import LLMService, extract_json, validate_payload
from models.travel import (
    TIER_NAMES, Itinerary, ItineraryTier, TiersResponse, TravelerProfile
)
from profile_service import ProfileService

logger = logging.getLogger(__name__)

DAYS_PER_TIER = 2

# Fraction of the traveler's mid-budget each tier should land near
TIER_BUDGET_FACTORS = {"Budget": 0.4, "Balanced": 0.7, "Luxe": 1.2}

DEFAULT_PRICE_BANDS = {
    "Budget": "6,000 - 10,000",
    "Balanced": "15,000 - 25,000",
    "Luxe": "40,000+",
}

TRAVEL_PURPOSE_CONTEXT = {
    "Solo": "solo traveler who enjoys independence and flexibility",
    "Couple": "romantic couple looking for intimate and memorable experiences",
    "Family": "family with children, focusing on family-friendly activities",
}

PACE_CONTEXT = {
    "relaxed": "1-2 activities per day with plenty of downtime",
    "moderate": "2-3 activities per day with balanced pacing",
    "packed": "3+ activities per day for maximum exploration",
}

ACCOMMODATION_CONTEXT = {
    "budget": "budget-friendly hostels and budget hotels",
    "mid-range": "comfortable boutique hotels and 3-star properties",
    "luxury": "premium 5-star hotels and luxury resorts",
    "unique": "unique stays like homestays, villas, or heritage properties",
}

DINING_CONTEXT = {
    "street-food": "authentic street food and local eateries",
    "mix": "a mix of local eateries and upscale dining",
    "fine-dining": "fine dining and upscale restaurants",
    "authentic": "authentic local culinary experiences",
}


def _activity(time_of_day, time, name, venue, location, description, duration, cost):
    return {
        "timeOfDay": time_of_day, "time": time, "name": name, "venue": venue,
        "location": location, "description": description, "duration": duration, "cost": cost,
    }


# Hand-written itinerary served whenever the LLM is unavailable or too slow.
DEMO_TIERS: List[Dict[str, Any]] = [
    {
        "name": "Budget",
        "description": "Smart spending, big experiences",
        "totalCost": 8000,
        "accommodation": "Boutique guesthouses",
        "dining": "Local eateries & street food",
        "days": [
            {"day": 1, "date": "Saturday", "activities": [
                _activity("Morning", "9:00 AM", "Heritage Walk", "Old City District", "Central Area",
                          "Explore historic landmarks and traditional architecture", "2 hours", 500),
                _activity("Afternoon", "1:00 PM", "Local Market Experience", "Main Bazaar", "Market District",
                          "Shop for handicrafts and enjoy street food", "3 hours", 1000),
                _activity("Evening", "7:00 PM", "Sunset at Viewpoint", "City Viewpoint", "Hill Station",
                          "Watch the sunset with panoramic city views", "2 hours", 300),
            ]},
            {"day": 2, "date": "Sunday", "activities": [
                _activity("Morning", "8:00 AM", "Nature Trail", "City Park", "Green District",
                          "Peaceful morning walk through gardens", "2 hours", 200),
                _activity("Afternoon", "12:00 PM", "Cultural Museum", "Heritage Museum", "Cultural Quarter",
                          "Learn about local history and art", "2 hours", 400),
                _activity("Evening", "6:00 PM", "Farewell Dinner", "Local Restaurant", "Downtown",
                          "Traditional cuisine at popular eatery", "2 hours", 800),
            ]},
        ],
    },
    {
        "name": "Balanced",
        "description": "Perfect mix of comfort and adventure",
        "totalCost": 18000,
        "accommodation": "Mid-range hotels",
        "dining": "Mix of local and upscale restaurants",
        "days": [
            {"day": 1, "date": "Saturday", "activities": [
                _activity("Morning", "9:00 AM", "Guided City Tour", "Historic Center", "Old Town",
                          "Private guide showing major attractions", "3 hours", 2000),
                _activity("Afternoon", "2:00 PM", "Art Gallery Visit", "Contemporary Art Museum", "Arts District",
                          "Curated collection of local and international art", "2 hours", 800),
                _activity("Evening", "7:30 PM", "Fine Dining Experience", "Rooftop Restaurant", "Downtown",
                          "Multi-cuisine dinner with city views", "2 hours", 3000),
            ]},
            {"day": 2, "date": "Sunday", "activities": [
                _activity("Morning", "8:00 AM", "Adventure Activity", "Adventure Sports Center", "Outskirts",
                          "Ziplining or rock climbing experience", "3 hours", 2500),
                _activity("Afternoon", "1:00 PM", "Spa & Wellness", "Luxury Spa", "Resort Area",
                          "Relaxing massage and treatments", "2 hours", 3000),
                _activity("Evening", "6:00 PM", "Cultural Show", "Performing Arts Theater", "Cultural Hub",
                          "Traditional dance and music performance", "2 hours", 1500),
            ]},
        ],
    },
    {
        "name": "Luxe",
        "description": "Premium experiences, zero compromise",
        "totalCost": 45000,
        "accommodation": "5-star hotels & resorts",
        "dining": "Michelin-recommended restaurants",
        "days": [
            {"day": 1, "date": "Saturday", "activities": [
                _activity("Morning", "10:00 AM", "Private Helicopter Tour", "Private Helipad", "Luxury Resort",
                          "Aerial views of the entire region", "1 hour", 15000),
                _activity("Afternoon", "2:00 PM", "VIP Shopping Experience", "Designer Boutiques", "Premium Mall",
                          "Personal shopper and exclusive collections", "3 hours", 5000),
                _activity("Evening", "8:00 PM", "Private Chef Dinner", "Villa Terrace", "Luxury Villa",
                          "Exclusive dining with celebrity chef", "3 hours", 8000),
            ]},
            {"day": 2, "date": "Sunday", "activities": [
                _activity("Morning", "9:00 AM", "Yacht Cruise", "Private Marina", "Waterfront",
                          "Luxury yacht with champagne brunch", "3 hours", 12000),
                _activity("Afternoon", "3:00 PM", "Premium Spa Retreat", "Five-Star Spa", "Resort",
                          "Full body treatments with aromatherapy", "3 hours", 6000),
                _activity("Evening", "7:00 PM", "Exclusive Wine Tasting", "Private Wine Cellar", "Heritage Property",
                          "Rare vintages with sommelier", "2 hours", 4000),
            ]},
        ],
    },
]


def demo_tiers() -> List[ItineraryTier]:
    return validate_tiers({"tiers": copy.deepcopy(DEMO_TIERS)})


def validate_tiers(data: Any) -> List[ItineraryTier]:
    """Check an LLM payload is exactly one 2-day plan per tier and return them in tier order."""
    if not isinstance(data, dict) or not isinstance(data.get("tiers"), list):
        raise SchemaError("Response is missing the 'tiers' array")
    tiers = validate_payload(TiersResponse, data).tiers

    names = [t.name for t in tiers]
    if sorted(names) != sorted(TIER_NAMES):
        raise SchemaError(f"Expected tiers {', '.join(TIER_NAMES)}, got {', '.join(names) or 'none'}")
    for tier in tiers:
        if len(tier.days) != DAYS_PER_TIER:
            raise SchemaError(f"Tier {tier.name} has {len(tier.days)} days, expected {DAYS_PER_TIER}")
        if [d.day for d in tier.days] != list(range(1, DAYS_PER_TIER + 1)):
            raise SchemaError(f"Tier {tier.name} days are not numbered 1..{DAYS_PER_TIER}")

    return sorted(tiers, key=lambda t: TIER_NAMES.index(t.name))


def price_bands(profile: Optional[TravelerProfile]) -> Dict[str, str]:
    if not profile or not profile.budget_max:
        return dict(DEFAULT_PRICE_BANDS)
    mid = (profile.budget_min + profile.budget_max) / 2
    return {tier: f"around {int(mid * factor):,}" for tier, factor in TIER_BUDGET_FACTORS.items()}


def build_prompt(destination: str,
                 trip_brief: Optional[str] = None,
                 profile: Optional[TravelerProfile] = None) -> str:
    prompt = (f"Create THREE distinct {DAYS_PER_TIER}-day weekend itinerary plans for {destination}, "
              f"one per tier: {', '.join(TIER_NAMES)}.")

    if profile:
        purpose = profile.travel_purpose.value if profile.travel_purpose else ""
        prompt += "\n\nTraveler Profile:"
        prompt += f"\n- Traveling as: {TRAVEL_PURPOSE_CONTEXT.get(purpose, purpose or 'not specified')}"
        prompt += f"\n- Budget range: {settings.CURRENCY_SYMBOL}{profile.budget_min:,} - {settings.CURRENCY_SYMBOL}{profile.budget_max:,}"
        prompt += f"\n- Preferred accommodation: {ACCOMMODATION_CONTEXT.get(profile.accommodation_style, profile.accommodation_style or 'not specified')}"
        prompt += f"\n- Dining preference: {DINING_CONTEXT.get(profile.dining_preference, profile.dining_preference or 'not specified')}"
        prompt += f"\n- Travel pace: {PACE_CONTEXT.get(profile.travel_pace, profile.travel_pace or 'not specified')}"
        if profile.special_interests:
            prompt += f"\n- Special interests: {', '.join(profile.special_interests)}"
        if profile.preferred_activities:
            prompt += f"\n- Preferred activities: {', '.join(profile.preferred_activities)}"
        if profile.dietary_restrictions:
            prompt += f"\n- Dietary restrictions: {profile.dietary_restrictions}"
        if profile.accessibility_requirements:
            prompt += f"\n- Accessibility requirements: {profile.accessibility_requirements}"
        prompt += "\n\nTailor each tier to these specific preferences."
    elif trip_brief:
        prompt += f"\n\nTrip context: {trip_brief}"

    bands = price_bands(profile)
    prompt += "\n\nTarget total cost per tier:"
    for tier in TIER_NAMES:
        prompt += f"\n- {tier}: {bands[tier]}"

    prompt += f"""

For each tier provide Day 1 and Day 2, each split into Morning, Afternoon and Evening activities.
Every activity must name a specific, real venue. Never use generic placeholders such as
"Local Restaurant" or "City Park". Costs must be realistic whole numbers.

Return ONLY a JSON object in this exact format:
{{
  "tiers": [
    {{
      "name": "Budget",
      "description": "One line describing the tier",
      "totalCost": 8000,
      "accommodation": "Where to stay",
      "dining": "Dining style",
      "days": [
        {{
          "day": 1,
          "date": "Saturday",
          "activities": [
            {{
              "timeOfDay": "Morning",
              "time": "9:00 AM",
              "name": "Activity name",
              "venue": "Specific venue name",
              "location": "Neighbourhood or area",
              "description": "What the traveler will do",
              "duration": "2 hours",
              "cost": 500
            }}
          ]
        }}
      ]
    }}
  ]
}}"""
    return prompt


class ItineraryService:
    """Owned itinerary rows: generation persistence, listing and deletion."""

    def __init__(self, database: Database):
        self.itineraries = database.table("itineraries")

    def save_tier(self, user_id: str, destination: str, tier: ItineraryTier,
                  destination_image_url: Optional[str] = None,
                  trip_brief: str = "") -> str:
        """Insert the tier, or overwrite the caller's existing row for the same destination and tier."""
        days = [d.to_json() for d in tier.days]
        # Migrated guest rows can leave several matches; the oldest one is reused
        matches = sorted(self.itineraries.select(user_id=user_id, destination=destination, tier=tier.name),
                         key=lambda r: r["created_at"])
        existing = matches[0] if matches else None
        if existing:
            self.itineraries.update({
                "days_json": days,
                "total_cost": tier.total_cost,
                "duration_days": len(days),
                "destination_hero_image_url": destination_image_url,
            }, id=existing["id"])
            return existing["id"]

        row = self.itineraries.insert({
            "user_id": user_id,
            "destination": destination,
            "destination_hero_image_url": destination_image_url,
            "trip_brief": trip_brief,
            "tier": tier.name,
            "days_json": days,
            "total_cost": tier.total_cost,
            "duration_days": len(days),
        })[0]
        return row["id"]

    def list_for_user(self, user_id: str) -> List[Itinerary]:
        rows = sorted(self.itineraries.select(user_id=user_id),
                      key=lambda r: r["created_at"], reverse=True)
        return [Itinerary.model_validate(r) for r in rows]

    def get(self, user_id: str, itinerary_id: str) -> Itinerary:
        row = self.itineraries.maybe_single(id=itinerary_id, user_id=user_id)
        if not row:
            raise NotFoundError(f"Itinerary {itinerary_id} not found")
        return Itinerary.model_validate(row)

    def update_days(self, itinerary_id: str, days: List[Dict[str, Any]], total_cost: int) -> None:
        self.itineraries.update({
            "days_json": days,
            "total_cost": total_cost,
            "duration_days": len(days),
        }, id=itinerary_id)

    def delete(self, user_id: str, itinerary_id: str) -> None:
        if not self.itineraries.delete(id=itinerary_id, user_id=user_id):
            raise NotFoundError(f"Itinerary {itinerary_id} not found")


class ItineraryGenerationService:
    """
    Produces the Budget / Balanced / Luxe weekend plans for a destination.

    The LLM is tried first under a fixed timeout. A timeout, or an LLM that is
    not configured at all, switches to DEMO_TIERS; every other failure is the
    caller's to report. Results are persisted per tier before returning.
    """

    SYSTEM_PROMPT = "You are an expert travel planner creating personalized weekend itineraries."

    def __init__(self,
                 llm: LLMService,
                 itineraries: ItineraryService,
                 profiles: ProfileService,
                 timeout_seconds: Optional[float] = None):
        self.llm = llm
        self.itineraries = itineraries
        self.profiles = profiles
        self.timeout_seconds = timeout_seconds or settings.GENERATION_TIMEOUT_SECONDS

    async def generate(self,
                       destination: str,
                       trip_brief: Optional[str] = None,
                       destination_image_url: Optional[str] = None,
                       user_id: Optional[str] = None,
                       guest_store: Optional[GuestItineraryStore] = None) -> Dict[str, Any]:
        destination = (destination or "").strip()
        if not destination:
            raise InputValidationError("Destination is required")
        if not user_id and guest_store is None:
            raise InputValidationError("A guest session is required for anonymous generation")

        profile = self.profiles.get_completed(user_id) if user_id else None
        prompt = build_prompt(destination, trip_brief, profile)

        demo_mode = False

        def use_demo() -> List[ItineraryTier]:
            nonlocal demo_mode
            demo_mode = True
            return demo_tiers()

        tiers = await with_fallback(
            lambda: self._generate_with_llm(prompt),
            use_demo,
            classify=recover_on_timeout_or_unconfigured,
            label=f"Itinerary generation for {destination}",
        )

        for tier in tiers:
            if user_id:
                tier.id = self.itineraries.save_tier(
                    user_id, destination, tier, destination_image_url, trip_brief or "")
            else:
                tier.id = guest_store.add_guest_itinerary({
                    "destination": destination,
                    "destination_hero_image_url": destination_image_url,
                    "tier": tier.name,
                    "days_json": [d.to_json() for d in tier.days],
                    "total_cost": tier.total_cost,
                })

        logger.info(f"Generated {len(tiers)} tiers for {destination} "
                    f"({'demo' if demo_mode else 'llm'}, {'user ' + user_id if user_id else 'guest'})")
        return {
            "tiers": [t.to_json() for t in tiers],
            "demoMode": demo_mode,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        }

    async def _generate_with_llm(self, prompt: str) -> List[ItineraryTier]:
        content = await asyncio.wait_for(
            self.llm.complete_json(self.SYSTEM_PROMPT, prompt, temperature=0.7, max_tokens=3000),
            timeout=self.timeout_seconds,
        )
        return validate_tiers(extract_json(content, "{"))
