import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from database_service import Database
from errors import InputValidationError, ProfileIncompleteError
from models.travel import TravelerProfile

logger = logging.getLogger(__name__)

MAX_PREFERRED_ACTIVITIES = 3
BUDGET_MIN_RATIO = 0.5


def validate_profile(profile: TravelerProfile) -> None:
    """Raise InputValidationError for anything the profile form would have rejected."""
    if profile.budget_max <= 0:
        raise InputValidationError("Budget must be greater than zero")
    if profile.budget_min > profile.budget_max:
        raise InputValidationError("Minimum budget cannot exceed maximum budget")
    if len(profile.preferred_activities) > MAX_PREFERRED_ACTIVITIES:
        raise InputValidationError(f"Select at most {MAX_PREFERRED_ACTIVITIES} preferred activities")
    if profile.trip_start_date and profile.trip_end_date and profile.trip_end_date < profile.trip_start_date:
        raise InputValidationError("Trip end date must be on or after the start date")
    if profile.profile_completed:
        if not profile.special_interests:
            raise InputValidationError("Select at least one special interest")
        if not profile.preferred_activities:
            raise InputValidationError("Select at least one preferred activity")


class ProfileService:

    def __init__(self, database: Database):
        self.profiles = database.table("user_profiles")

    def get(self, user_id: str) -> Optional[TravelerProfile]:
        row = self.profiles.maybe_single(user_id=user_id)
        return TravelerProfile.model_validate(row) if row else None

    def upsert(self, user_id: str, data: Dict[str, Any]) -> TravelerProfile:
        values = {**data, "user_id": user_id}
        if values.get("budget_max") is not None:
            # The form only asks for a ceiling; the floor follows from it.
            values["budget_min"] = int(values["budget_max"] * BUDGET_MIN_RATIO)
        try:
            profile = TravelerProfile.model_validate(values)
        except ValidationError as e:
            raise InputValidationError(f"Invalid profile: {e.errors()[0]['msg']}") from e
        validate_profile(profile)

        row = profile.model_dump(mode="json")
        if self.profiles.maybe_single(user_id=user_id):
            self.profiles.update(row, user_id=user_id)
        else:
            self.profiles.insert(row)
        logger.info(f"Saved profile for user {user_id} (completed={profile.profile_completed})")
        return profile

    def get_completed(self, user_id: str) -> Optional[TravelerProfile]:
        profile = self.get(user_id)
        if profile and profile.profile_completed:
            return profile
        return None

    def require_completed(self, user_id: str) -> TravelerProfile:
        profile = self.get(user_id)
        if not profile:
            raise ProfileIncompleteError("Profile not found")
        if not profile.profile_completed:
            raise ProfileIncompleteError("Please complete your travel profile first")
        return profile
