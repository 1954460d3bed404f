from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import date
from typing import List, Optional, Dict, Any, Literal
from enum import Enum


TIER_NAMES = ("Budget", "Balanced", "Luxe")


class TravelPurpose(str, Enum):
    SOLO = "Solo"
    COUPLE = "Couple"
    FAMILY = "Family"


class CamelModel(BaseModel):
    """Base for payloads exchanged with the LLM and the browser, which speak camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


# Traveler profile ----------------------------------------------------------

class TravelerProfile(BaseModel):
    user_id: Optional[str] = None
    start_city: Optional[str] = None
    destination_city: Optional[str] = None
    trip_start_date: Optional[date] = None
    trip_end_date: Optional[date] = None
    travel_purpose: Optional[TravelPurpose] = None
    budget_min: int = Field(default=0, ge=0)
    budget_max: int = Field(default=0, ge=0)
    accommodation_style: Optional[str] = None
    dining_preference: Optional[str] = None
    travel_pace: Optional[str] = None
    preferred_activities: List[str] = []
    special_interests: List[str] = []
    dietary_restrictions: Optional[str] = None
    accessibility_requirements: Optional[str] = None
    profile_completed: bool = False

    @property
    def trip_duration_days(self) -> Optional[int]:
        if not self.trip_start_date or not self.trip_end_date:
            return None
        return (self.trip_end_date - self.trip_start_date).days


# Tiered weekend itineraries --------------------------------------------------

class Activity(CamelModel):
    time_of_day: str = ""
    time: str = ""
    name: str
    venue: str
    location: str
    description: str = ""
    duration: str = ""
    cost: int = Field(ge=0)
    images: Optional[List[str]] = None


class Day(CamelModel):
    day: int = Field(ge=1)
    date: str = ""
    activities: List[Activity]


class ItineraryTier(CamelModel):
    id: Optional[str] = None
    name: Literal["Budget", "Balanced", "Luxe"]
    description: str = ""
    total_cost: int = Field(ge=0)
    accommodation: Optional[str] = None
    dining: Optional[str] = None
    days: List[Day]


class TiersResponse(CamelModel):
    tiers: List[ItineraryTier]


class ItineraryRecord(BaseModel):
    """Fields shared by every persisted itinerary, owned or guest; what exports work from."""
    id: str
    destination: str
    destination_hero_image_url: Optional[str] = None
    tier: str
    days_json: List[Dict[str, Any]] = []
    total_cost: int = 0
    duration_days: int = 2

    @property
    def days(self) -> List[Day]:
        return [Day.model_validate(d) for d in self.days_json]


class Itinerary(ItineraryRecord):
    """A persisted itinerary row owned by an authenticated user."""
    user_id: str
    trip_brief: str = ""


class GuestItinerary(ItineraryRecord):
    total_cost: int
    days_json: List[Dict[str, Any]]


class RefinedItinerary(CamelModel):
    days: List[Day]
    total_cost: Optional[int] = Field(default=None, ge=0)


# Multi-day packages ----------------------------------------------------------

class CostBreakdown(BaseModel):
    accommodation: int = Field(ge=0)
    dining: int = Field(ge=0)
    transportation: int = Field(ge=0)
    activities: int = Field(ge=0)
    miscellaneous: int = Field(ge=0)

    @property
    def total(self) -> int:
        return (self.accommodation + self.dining + self.transportation
                + self.activities + self.miscellaneous)


class PackageAccommodation(CamelModel):
    type: str
    recommendations: List[str] = []


class PackageTransportation(CamelModel):
    mode: str
    details: str = ""


class PackageActivity(CamelModel):
    time: str
    activity: str
    description: str = ""
    cost: int = Field(ge=0)


class Meals(CamelModel):
    breakfast: str = ""
    lunch: str = ""
    dinner: str = ""


class PackageDay(CamelModel):
    day: int = Field(ge=1)
    title: str
    activities: List[PackageActivity]
    meals: Meals
    accommodation: str = ""


class GeneratedPackage(CamelModel):
    package_name: str
    tagline: str = ""
    tier: str
    total_cost: int = Field(ge=0)
    cost_breakdown: CostBreakdown
    highlights: List[str] = []
    accommodation: PackageAccommodation
    transportation: PackageTransportation
    itinerary: List[PackageDay]


# Recommendations, images and weather -------------------------------------------

class Destination(CamelModel):
    name: str
    country: str = ""
    state: str = ""
    description: str
    estimated_budget: int = Field(ge=0)
    best_for: List[str] = []
    distance_from_start: str = ""
    match_score: int = Field(ge=0, le=100)
    image_url: Optional[str] = None
    photographer: Optional[str] = None
    photographer_url: Optional[str] = None


class ImageResult(CamelModel):
    image_url: str
    photographer: str
    photographer_url: str


class WeatherForecast(CamelModel):
    date: str
    temperature_max: int
    temperature_min: int
    condition: str
    description: str
    icon: str
    precipitation_probability: int
    humidity: int
    wind_speed: int
