import pytest
import requests

from errors import ImageSearchError
from image_service import (
    CATEGORY_IMAGES, FALLBACK_IMAGE_URL, ImageService, activity_hash, categorize_activity
)
from models.travel import Activity


def _activity(name, venue="Somewhere", description=""):
    return Activity(name=name, venue=venue, location="Old Town", description=description, cost=0)


class FakeResponse:

    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class FakeSession:

    def __init__(self, *responses):
        self.responses = list(responses)
        self.queries = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.queries.append(params["query"])
        return self.responses.pop(0)


def _photo(url):
    return {"src": {"large2x": url}, "photographer": "Ana", "photographer_url": "https://pexels.com/@ana"}


@pytest.mark.parametrize("name, venue, description, category", [
    ("National Art Gallery", "", "", "museum"),
    ("Dinner", "Rooftop Restaurant", "", "food"),
    ("Botanical Garden Walk", "", "", "nature"),
    ("Night Bazaar", "", "", "market"),
    ("Old Fort", "", "A historic citadel", "architecture"),
    ("Ayurvedic Massage", "", "", "spa"),
    ("Hiking the Ridge", "", "", "adventure"),
    ("Sunset Yacht Trip", "", "", "cruise"),
    ("Free Time", "", "", "travel"),
])
def test_categorize_activity(name, venue, description, category):
    assert categorize_activity(_activity(name, venue, description)) == category


def test_first_matching_rule_wins():
    # "museum" is checked before "garden"
    assert categorize_activity(_activity("Museum Garden Tour")) == "museum"


def test_activity_hash():
    activity = Activity(name="Heritage  Walk", venue="Old City", location="Central Area", cost=0)
    assert activity_hash(activity, "Jaipur") == "heritage-walk-old-city-central-area-jaipur"


def test_destination_image_retries_with_country(database):
    service = ImageService(database, api_key="key")
    service.session = FakeSession(FakeResponse({"photos": []}),
                                  FakeResponse({"photos": [_photo("https://img/1.jpg")]}))

    result = service.get_destination_image("Tiny Village", "Portugal")
    assert result.image_url == "https://img/1.jpg"
    assert service.session.queries == ["Tiny Village Portugal travel landscape", "Portugal travel"]


def test_destination_image_falls_back_without_key(database):
    result = ImageService(database, api_key="").get_destination_image("Goa", "India")
    assert result.image_url == FALLBACK_IMAGE_URL
    assert result.photographer == "Pexels"


def test_search_error_is_wrapped(database):
    service = ImageService(database, api_key="key")
    service.session = FakeSession(FakeResponse({}, status=500))
    with pytest.raises(ImageSearchError):
        service.find_destination_image("Goa")


def test_activity_images_are_cached(database):
    service = ImageService(database, api_key="key")
    service.session = FakeSession(FakeResponse({"photos": [_photo("https://img/a.jpg"), _photo("https://img/b.jpg")]}))
    activity = _activity("Spice Market Tour")

    first = service.get_activity_images(activity, "Kochi")
    second = service.get_activity_images(activity, "Kochi")

    assert first == second == ["https://img/a.jpg", "https://img/b.jpg"]
    assert len(service.session.queries) == 1


def test_activity_images_use_category_placeholders(database):
    images = ImageService(database, api_key="").get_activity_images(_activity("Spice Market Tour"), "Kochi")
    assert images == CATEGORY_IMAGES["market"]
    assert database.table("activity_images").select() == []
