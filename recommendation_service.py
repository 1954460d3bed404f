import asyncio
import logging
import secrets
from typing import Any, Dict, List, Optional

from config import settings
from errors import InputValidationError, SchemaError
from fallback import recover_always, with_fallback
from image_service import FALLBACK_IMAGE, ImageService
from llm_service import LLMService, extract_json, validate_payload
from models.travel import Destination, ImageResult, TravelerProfile
from profile_service import ProfileService

logger = logging.getLogger(__name__)

RECOMMENDATION_COUNT = 6


def build_recommendation_prompt(profile: TravelerProfile, duration: int, seed: str) -> str:
    symbol = settings.CURRENCY_SYMBOL
    month = profile.trip_start_date.strftime("%B")
    purpose = profile.travel_purpose.value if profile.travel_purpose else "Not specified"
    activities = ", ".join(profile.preferred_activities)

    prompt = f"""Based on the following traveler profile, suggest {RECOMMENDATION_COUNT} diverse destinations that match their criteria. Mix popular choices with hidden gems.

Variation seed: {seed} (use it to vary your picks between requests)

Traveler Profile:
- Start City: {profile.start_city}
- Travel Dates: {profile.trip_start_date} to {profile.trip_end_date} ({duration} days, travelling in {month})
- Traveling With: {purpose}
- Budget Range: {symbol}{profile.budget_min:,} - {symbol}{profile.budget_max:,}
- Accommodation Style: {profile.accommodation_style or 'Not specified'}
- Dining Preference: {profile.dining_preference or 'Not specified'}
- Travel Pace: {profile.travel_pace or 'Not specified'}
- Preferred Activities: {activities}
- Special Interests: {', '.join(profile.special_interests)}"""
    if profile.dietary_restrictions:
        prompt += f"\n- Dietary Restrictions: {profile.dietary_restrictions}"
    if profile.accessibility_requirements:
        prompt += f"\n- Accessibility Needs: {profile.accessibility_requirements}"

    prompt += f"""

For each destination provide its name, country and state or region, a 2-3 sentence description of
why it suits this traveler in {month}, an estimated total budget covering transport, stay, food and
activities, the activities it is best for (chosen from: {activities}), the approximate distance from
{profile.start_city}, and a match score from 0 to 100.

All {RECOMMENDATION_COUNT} destinations must be different. Return ONLY a JSON array in this exact format:
[
  {{
    "name": "Destination Name",
    "country": "Country",
    "state": "State or Region",
    "description": "Brief description",
    "estimatedBudget": 50000,
    "bestFor": ["Activity 1", "Activity 2"],
    "distanceFromStart": "350 km",
    "matchScore": 95
  }}
]"""
    return prompt


def parse_destinations(content: str) -> List[Destination]:
    data = extract_json(content, "[")
    if not isinstance(data, list):
        raise SchemaError("Expected a JSON array of destinations")
    destinations = [validate_payload(Destination, item) for item in data]
    if len(destinations) != RECOMMENDATION_COUNT:
        raise SchemaError(f"Expected {RECOMMENDATION_COUNT} destinations, got {len(destinations)}")
    names = {d.name.strip().lower() for d in destinations}
    if len(names) != len(destinations):
        raise SchemaError("Destinations must be distinct")
    return destinations


class DestinationRecommendationService:
    """Six ranked destination ideas for a completed profile, each with a photo."""

    SYSTEM_PROMPT = "You are a travel expert recommending destinations."

    def __init__(self, llm: LLMService, profiles: ProfileService, images: ImageService):
        self.llm = llm
        self.profiles = profiles
        self.images = images

    async def recommend(self, user_id: str, seed: Optional[str] = None) -> Dict[str, Any]:
        profile = self.profiles.require_completed(user_id)
        if not profile.start_city or not profile.trip_start_date or not profile.trip_end_date:
            raise InputValidationError("Start city and trip dates are required")
        duration = profile.trip_duration_days
        if duration < 1:
            raise InputValidationError("Trip end date must be after the start date")

        prompt = build_recommendation_prompt(profile, duration, seed or secrets.token_hex(4))
        content = await self.llm.complete_json(
            self.SYSTEM_PROMPT, prompt, temperature=0.8, max_tokens=2000, json_object=False)
        try:
            destinations = parse_destinations(content)
        except SchemaError as e:
            logger.error(f"Failed to parse destination suggestions: {e.message}")
            raise SchemaError("Failed to parse destination suggestions") from e

        photos = await asyncio.gather(*[self._photo_for(d) for d in destinations])
        for destination, photo in zip(destinations, photos):
            destination.image_url = photo.image_url
            destination.photographer = photo.photographer
            destination.photographer_url = photo.photographer_url

        return {
            "destinations": [d.to_json() for d in destinations],
            "profile": {
                "start_city": profile.start_city,
                "trip_start_date": profile.trip_start_date.isoformat(),
                "trip_end_date": profile.trip_end_date.isoformat(),
                "travel_purpose": profile.travel_purpose.value if profile.travel_purpose else None,
                "budget_max": profile.budget_max,
            },
        }

    async def _photo_for(self, destination: Destination) -> ImageResult:
        country = destination.country or destination.state

        async def search() -> ImageResult:
            return await asyncio.to_thread(self.images.find_destination_image, destination.name, country)

        return await with_fallback(
            search,
            FALLBACK_IMAGE.model_copy,
            classify=recover_always,
            label=f"Photo lookup for {destination.name}",
        )
