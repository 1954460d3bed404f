import logging
import re
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from config import settings
from database_service import Database
from errors import ImageSearchError, PersistenceError
from fallback import call_with_fallback, recover_on
from models.travel import Activity, ImageResult

logger = logging.getLogger(__name__)

FALLBACK_IMAGE_URL = "https://images.pexels.com/photos/1008155/pexels-photo-1008155.jpeg?auto=compress&cs=tinysrgb&w=1920"
FALLBACK_IMAGE = ImageResult(
    image_url=FALLBACK_IMAGE_URL,
    photographer="Pexels",
    photographer_url="https://www.pexels.com",
)

_PEXELS = "https://images.pexels.com/photos/{id}/pexels-photo-{id}.jpeg?auto=compress&cs=tinysrgb&w=400"

# Placeholder photos per activity category, used when search finds nothing
CATEGORY_IMAGES: Dict[str, List[str]] = {
    "museum": [_PEXELS.format(id=2883049), _PEXELS.format(id=1457842)],
    "food": [_PEXELS.format(id=1640777), _PEXELS.format(id=958545)],
    "nature": [_PEXELS.format(id=1166209), _PEXELS.format(id=417074)],
    "market": [_PEXELS.format(id=2292919), _PEXELS.format(id=3965545)],
    "architecture": [_PEXELS.format(id=1603650), _PEXELS.format(id=3881104)],
    "spa": [_PEXELS.format(id=3757942), _PEXELS.format(id=3188)],
    "adventure": [_PEXELS.format(id=2526878), _PEXELS.format(id=1365425)],
    "cruise": [_PEXELS.format(id=163236), _PEXELS.format(id=1430677)],
    "travel": [_PEXELS.format(id=1008155), _PEXELS.format(id=2325446)],
}

DEFAULT_CATEGORY = "travel"


def _any_in(text: str, *words: str) -> bool:
    return any(word in text for word in words)


# Evaluated in order; the first matching rule decides the category.
CATEGORY_RULES: List[Tuple[Callable[[str, str, str], bool], str]] = [
    (lambda name, venue, desc: _any_in(name, "museum", "gallery") or "museum" in venue, "museum"),
    (lambda name, venue, desc: _any_in(name, "food", "dining", "restaurant") or "restaurant" in venue, "food"),
    (lambda name, venue, desc: _any_in(name, "nature", "park", "garden", "beach"), "nature"),
    (lambda name, venue, desc: _any_in(name, "market", "shopping", "bazaar"), "market"),
    (lambda name, venue, desc: _any_in(name, "temple", "church", "palace") or "historic" in desc, "architecture"),
    (lambda name, venue, desc: _any_in(name, "spa", "wellness", "massage"), "spa"),
    (lambda name, venue, desc: _any_in(name, "adventure", "sports", "hiking"), "adventure"),
    (lambda name, venue, desc: _any_in(name, "cruise", "yacht", "boat"), "cruise"),
]


def categorize_activity(activity: Activity) -> str:
    name, venue, desc = activity.name.lower(), activity.venue.lower(), activity.description.lower()
    for predicate, category in CATEGORY_RULES:
        if predicate(name, venue, desc):
            return category
    return DEFAULT_CATEGORY


def activity_hash(activity: Activity, destination: str) -> str:
    """Stable identity of an activity, used as the image cache key."""
    raw = f"{activity.name}-{activity.venue}-{activity.location}-{destination}".lower()
    return re.sub(r"\s+", "-", raw)


class ImageService:
    """
    Stock photography lookups against the Pexels search API.
    """

    def __init__(self, database: Database, api_key: Optional[str] = None):
        self.api_key = settings.PEXELS_API_KEY if api_key is None else api_key
        self.base_url = "https://api.pexels.com/v1"
        self.cache = database.table("activity_images")
        self.session = requests.Session()

    def search_photos(self, query: str, per_page: int = 5) -> List[Dict[str, Any]]:
        """Return raw Pexels photo dicts for a query; raises ImageSearchError on any failure."""
        if not self.api_key:
            raise ImageSearchError("PEXELS_API_KEY not configured")
        try:
            response = self.session.get(
                f"{self.base_url}/search",
                params={"query": query, "per_page": per_page, "orientation": "landscape", "size": "large"},
                headers={"Authorization": self.api_key},
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return response.json().get("photos", [])
        except requests.RequestException as e:
            logger.error(f"Pexels API error for '{query}': {str(e)}")
            raise ImageSearchError(f"Pexels API error: {str(e)}") from e

    @staticmethod
    def _to_result(photo: Dict[str, Any]) -> ImageResult:
        src = photo.get("src", {})
        return ImageResult(
            image_url=src.get("large2x") or src.get("large"),
            photographer=photo.get("photographer", "Pexels"),
            photographer_url=photo.get("photographer_url", "https://www.pexels.com"),
        )

    def find_destination_image(self, destination_name: str, country: str = "") -> ImageResult:
        """
        One representative landscape photo for a destination.

        Falls back to a country-level query when the destination has no photos.
        Raises ImageSearchError when the API is unusable.
        """
        query = f"{destination_name} {country} travel landscape".replace("  ", " ")
        logger.info(f"Searching Pexels for: {query}")
        photos = self.search_photos(query)
        if not photos and country:
            logger.info(f"No photos found, trying fallback: {country} travel")
            photos = self.search_photos(f"{country} travel")
        if not photos:
            raise ImageSearchError(f"No photos found for {destination_name}")
        return self._to_result(photos[0])

    def get_destination_image(self, destination_name: str, country: str = "") -> ImageResult:
        return call_with_fallback(
            lambda: self.find_destination_image(destination_name, country),
            FALLBACK_IMAGE.model_copy,
            classify=recover_on(ImageSearchError),
            label=f"Destination image for {destination_name}",
        )

    def get_activity_images(self, activity: Activity, destination: str) -> List[str]:
        """Cached photos for one activity, searched on first request and category placeholders otherwise."""
        key = activity_hash(activity, destination)
        cached = self.cache.maybe_single(activity_hash=key)
        if cached and cached.get("image_urls"):
            return list(cached["image_urls"])

        query = f"{activity.name} {activity.venue} {activity.location}"
        images = call_with_fallback(
            lambda: [self._to_result(p).image_url for p in self.search_photos(query, per_page=2)],
            list,
            classify=recover_on(ImageSearchError),
            label=f"Activity image search for {key}",
        )

        if not images:
            return list(CATEGORY_IMAGES[categorize_activity(activity)])

        try:
            self.cache.insert({"activity_hash": key, "image_urls": images})
        except PersistenceError as e:
            logger.warning(f"Could not cache images for {key}: {e.message}")
        return images
