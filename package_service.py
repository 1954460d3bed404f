import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List

from config import settings
from errors import InputValidationError, SchemaError
from fallback import recover_always, with_fallback
from llm_service import LLMService, extract_json, validate_payload
from models.travel import GeneratedPackage, TravelerProfile
from profile_service import ProfileService

logger = logging.getLogger(__name__)

TIER_MULTIPLIERS = {
    "budget": Decimal("0.7"),
    "balanced": Decimal("1.0"),
    "luxe": Decimal("1.5"),
}

# Share of each day's budget per category; miscellaneous takes whatever rounding leaves
DAILY_SPLIT = {
    "accommodation": Decimal("0.35"),
    "dining": Decimal("0.25"),
    "transportation": Decimal("0.15"),
    "activities": Decimal("0.20"),
}

MIN_TRIP_DAYS = 1
MAX_TRIP_DAYS = 30

FALLBACK_INTERESTS = ["Sightseeing", "Local Culture", "Food & Dining"]

TIER_GUIDANCE = {
    "budget": ("- Focus on cost-effective options, hostels/budget hotels, local transport, street food\n"
               "- Include free activities and budget-friendly experiences"),
    "balanced": ("- Mix of comfort and value, mid-range hotels, mix of transport options\n"
                 "- Balance between popular attractions and local experiences"),
    "luxe": ("- Premium accommodations, private transport, fine dining\n"
             "- Exclusive experiences, VIP access, personalized services"),
}

MOCK_TIER_DETAILS = {
    "budget": {
        "label": "Budget",
        "tagline": "Big memories, small spend",
        "accommodation_type": "Budget hotel or hostel",
        "recommendations": ["Clean budget hotel near the centre", "Well-reviewed backpacker hostel"],
        "transport_mode": "Public transport & shared cabs",
        "transport_details": "Buses, metro and shared autos between sights",
        "meals": ("Local cafe breakfast", "Street food lunch", "Popular local eatery"),
    },
    "balanced": {
        "label": "Balanced",
        "tagline": "Comfort and discovery in equal measure",
        "accommodation_type": "Mid-range boutique hotel",
        "recommendations": ["Boutique hotel in the old quarter", "3-star hotel with breakfast included"],
        "transport_mode": "Cabs and private transfers",
        "transport_details": "App cabs for city hops, a private transfer for arrival and departure",
        "meals": ("Hotel breakfast", "Well-known local restaurant", "Rooftop dinner"),
    },
    "luxe": {
        "label": "Luxe",
        "tagline": "Every detail taken care of",
        "accommodation_type": "5-star luxury resort",
        "recommendations": ["Flagship 5-star resort", "Heritage palace hotel suite"],
        "transport_mode": "Private chauffeur-driven car",
        "transport_details": "Dedicated car and driver for the whole stay",
        "meals": ("In-suite breakfast", "Chef's tasting lunch", "Fine dining with a sommelier"),
    },
}


def trip_duration(profile: TravelerProfile) -> int:
    if not profile.trip_start_date or not profile.trip_end_date:
        raise InputValidationError("Trip start and end dates are required")
    days = profile.trip_duration_days
    if days < MIN_TRIP_DAYS or days > MAX_TRIP_DAYS:
        raise InputValidationError(
            f"Trip duration must be between {MIN_TRIP_DAYS} and {MAX_TRIP_DAYS} days, got {days}")
    return days


def adjusted_budget(profile: TravelerProfile, tier: str) -> Dict[str, int]:
    multiplier = TIER_MULTIPLIERS[tier]
    low = profile.budget_min * multiplier
    high = profile.budget_max * multiplier
    # The average is taken before flooring, so it can exceed the mean of the floored bounds
    return {"min": int(low), "max": int(high), "average": int((low + high) / 2)}


def _interests(profile: TravelerProfile) -> List[str]:
    chosen = list(profile.special_interests[:3])
    for fallback in FALLBACK_INTERESTS:
        if len(chosen) >= 3:
            break
        if fallback not in chosen:
            chosen.append(fallback)
    return chosen


def _day_title(day: int, total_days: int, destination: str) -> str:
    if day == 1:
        return "Arrival & Exploration"
    if day == total_days:
        return "Final Day & Departure"
    return f"Discover {destination} - Day {day}"


def mock_package(profile: TravelerProfile, tier: str, duration: int) -> GeneratedPackage:
    """Deterministic package built from the traveler's budget and interests."""
    destination = profile.destination_city
    details = MOCK_TIER_DETAILS[tier]
    per_day = adjusted_budget(profile, tier)["average"] // duration
    total = per_day * duration

    breakdown = {name: int(per_day * share) * duration for name, share in DAILY_SPLIT.items()}
    breakdown["miscellaneous"] = total - sum(breakdown.values())

    activity_budget = int(per_day * DAILY_SPLIT["activities"])
    slot_cost = activity_budget // 3
    costs = [slot_cost, slot_cost, activity_budget - 2 * slot_cost]
    interests = _interests(profile)
    breakfast, lunch, dinner = details["meals"]

    itinerary = []
    for day in range(1, duration + 1):
        itinerary.append({
            "day": day,
            "title": _day_title(day, duration, destination),
            "activities": [
                {"time": "9:00 AM", "activity": f"{interests[0]} Experience",
                 "description": f"Start the day with {interests[0].lower()} around {destination}", "cost": costs[0]},
                {"time": "2:00 PM", "activity": f"{interests[1]} Exploration",
                 "description": f"Spend the afternoon on {interests[1].lower()} in {destination}", "cost": costs[1]},
                {"time": "6:00 PM", "activity": f"{interests[2]} Evening",
                 "description": f"Wind down with {interests[2].lower()} as the city lights up", "cost": costs[2]},
            ],
            "meals": {"breakfast": breakfast, "lunch": lunch, "dinner": dinner},
            "accommodation": details["accommodation_type"],
        })

    return GeneratedPackage.model_validate({
        "packageName": f"{destination} {details['label']} Escape",
        "tagline": details["tagline"],
        "tier": tier,
        "totalCost": total,
        "costBreakdown": breakdown,
        "highlights": [f"{interest} in {destination}" for interest in interests],
        "accommodation": {"type": details["accommodation_type"], "recommendations": details["recommendations"]},
        "transportation": {"mode": details["transport_mode"], "details": details["transport_details"]},
        "itinerary": itinerary,
    })


def build_package_prompt(profile: TravelerProfile, tier: str, duration: int) -> str:
    budget = adjusted_budget(profile, tier)
    symbol = settings.CURRENCY_SYMBOL
    purpose = profile.travel_purpose.value if profile.travel_purpose else "Not specified"
    return f"""You are an expert travel planner. Generate a detailed {tier} travel package itinerary.

User Profile:
- Starting Point: {profile.start_city}
- Destination: {profile.destination_city}
- Trip Duration: {duration} days ({profile.trip_start_date} to {profile.trip_end_date})
- Traveling With: {purpose}
- Budget Range: {symbol}{budget['min']:,} - {symbol}{budget['max']:,}
- Accommodation Style: {profile.accommodation_style or 'Not specified'}
- Dining Preference: {profile.dining_preference or 'Not specified'}
- Travel Pace: {profile.travel_pace or 'Not specified'}
- Preferred Activities: {', '.join(profile.preferred_activities) or 'Not specified'}
- Special Interests: {', '.join(profile.special_interests) or 'Not specified'}
- Dietary Restrictions: {profile.dietary_restrictions or 'None'}
- Accessibility Requirements: {profile.accessibility_requirements or 'None'}

Generate a {tier.upper()} package with a name and tagline, a day-by-day itinerary covering all
{duration} days, accommodation recommendations, dining suggestions, transportation details,
an estimated cost breakdown and highlights.

For {tier} tier:
{TIER_GUIDANCE[tier]}

Format the response as JSON with this structure:
{{
  "packageName": "string",
  "tagline": "string",
  "tier": "{tier}",
  "totalCost": number,
  "costBreakdown": {{"accommodation": number, "dining": number, "transportation": number,
                     "activities": number, "miscellaneous": number}},
  "highlights": ["string"],
  "accommodation": {{"type": "string", "recommendations": ["string"]}},
  "transportation": {{"mode": "string", "details": "string"}},
  "itinerary": [
    {{
      "day": number,
      "title": "string",
      "activities": [{{"time": "string", "activity": "string", "description": "string", "cost": number}}],
      "meals": {{"breakfast": "string", "lunch": "string", "dinner": "string"}},
      "accommodation": "string"
    }}
  ]
}}"""


class PackageVariationService:
    """Builds budget, balanced and luxe multi-day packages from a completed profile."""

    def __init__(self, llm: LLMService, profiles: ProfileService):
        self.llm = llm
        self.profiles = profiles

    async def generate(self, user_id: str) -> Dict[str, Any]:
        profile = self.profiles.require_completed(user_id)
        if not profile.start_city or not profile.destination_city:
            raise InputValidationError("Start city and destination city are required")
        duration = trip_duration(profile)

        packages = await asyncio.gather(*[
            self._generate_tier(profile, tier, duration) for tier in TIER_MULTIPLIERS
        ])
        return {"packages": [p.to_json() for p in packages]}

    async def _generate_tier(self, profile: TravelerProfile, tier: str, duration: int) -> GeneratedPackage:
        return await with_fallback(
            lambda: self._generate_with_llm(profile, tier, duration),
            lambda: mock_package(profile, tier, duration),
            classify=recover_always,
            label=f"{tier} package for {profile.destination_city}",
        )

    async def _generate_with_llm(self, profile: TravelerProfile, tier: str, duration: int) -> GeneratedPackage:
        content = await self.llm.complete_json(
            build_package_prompt(profile, tier, duration),
            "Generate the travel package itinerary.",
            temperature=0.8,
        )
        package = validate_payload(GeneratedPackage, extract_json(content, "{"))
        if len(package.itinerary) != duration:
            raise SchemaError(f"{tier} package covers {len(package.itinerary)} days, expected {duration}")
        return package
