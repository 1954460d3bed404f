from datetime import datetime, timedelta

import pytest
from icalendar import Calendar

from errors import ExportError
from export_service import (
    calendar_filename, document_filename, export_calendar, export_document, parse_clock,
    parse_duration_minutes, to_calendar_events
)
from itinerary_service import demo_tiers
from models.travel import Itinerary

NOW = datetime(2026, 10, 19, 12, 0)


def _itinerary(days, destination="Goa", tier="Budget"):
    return Itinerary(id="it-1", user_id="user-1", destination=destination, tier=tier,
                     days_json=days, total_cost=8000, duration_days=len(days))


def _activity(name="Beach Walk", time="9:00 AM", duration="", images=None):
    activity = {"timeOfDay": "Morning", "time": time, "name": name, "venue": "Baga Beach",
                "location": "North Goa", "description": "Walk on the sand", "duration": duration, "cost": 500}
    if images:
        activity["images"] = images
    return activity


def test_weekday_date_with_default_duration():
    events = to_calendar_events(_itinerary([{"day": 1, "date": "Saturday", "activities": [_activity()]}]), NOW)
    assert len(events) == 1
    event = events[0]
    assert (event.start.hour, event.start.minute) == (9, 0)
    assert event.end - event.start == timedelta(minutes=60)
    assert event.location == "Baga Beach, North Goa"
    assert "Cost: ₹500" in event.description
    assert "Duration: N/A" in event.description


def test_month_day_date_and_afternoon_time():
    day = {"day": 2, "date": "November 8", "activities": [_activity(time="2:30 PM", duration="2 hours 30 min")]}
    event = to_calendar_events(_itinerary([day]), NOW)[0]
    assert event.start == datetime(2026, 11, 8, 14, 30)
    assert event.end == datetime(2026, 11, 8, 17, 0)


def test_days_without_month_follow_trip_order():
    days = [{"day": 1, "date": "Saturday", "activities": [_activity()]},
            {"day": 2, "date": "Sunday", "activities": [_activity()]}]
    first, second = to_calendar_events(_itinerary(days), NOW)
    assert second.start - first.start == timedelta(days=1)


@pytest.mark.parametrize("text, expected", [
    ("", (9, 0)), ("Sunset", (9, 0)), ("12:00 PM", (12, 0)), ("12:15 AM", (0, 15)), ("7:45 pm", (19, 45)),
])
def test_parse_clock(text, expected):
    assert parse_clock(text) == expected


@pytest.mark.parametrize("text, minutes", [
    ("2 hours", 120), ("1 hour 30 min", 90), ("45 minutes", 45), ("1.5 hours", 90), ("a while", 60), (None, 60),
])
def test_parse_duration(text, minutes):
    assert parse_duration_minutes(text) == minutes


def test_invalid_activity_is_skipped_not_fatal():
    day = {"day": 1, "date": "Saturday", "activities": [_activity(time="25:00"), _activity(name="Dinner")]}
    events = to_calendar_events(_itinerary([day]), NOW)
    assert [e.title for e in events] == ["Dinner"]


def test_no_valid_events_is_an_error():
    day = {"day": 1, "date": "February 30", "activities": [_activity(), _activity(time="13:75")]}
    with pytest.raises(ExportError, match="No valid events"):
        to_calendar_events(_itinerary([day]), NOW)


def test_calendar_export():
    days = [d.to_json() for d in demo_tiers()[1].days]
    export = export_calendar(_itinerary(days, destination="Costa Rica", tier="Balanced"), NOW)

    assert export.filename == "Costa-Rica-Balanced-itinerary.ics"
    calendar = Calendar.from_ical(export.content)
    assert str(calendar["X-WR-CALNAME"]) == "Costa Rica - Balanced Tier"
    events = calendar.walk("VEVENT")
    assert len(events) == 6
    assert str(events[0]["SUMMARY"]) == "Guided City Tour"
    assert str(events[0]["STATUS"]) == "CONFIRMED"


def test_calendar_export_requires_days():
    with pytest.raises(ExportError, match="No itinerary data"):
        export_calendar(_itinerary([]), NOW)


def test_filenames():
    itinerary = _itinerary([], destination="São Paulo, Brazil", tier="Luxe")
    assert calendar_filename(itinerary) == "So-Paulo-Brazil-Luxe-itinerary.ics"
    assert document_filename(itinerary) == "S-o-Paulo--Brazil-Luxe-itinerary.pdf"


def test_document_export_paginates_and_survives_image_failures():
    activities = [_activity(name=f"Stop {i}", images=[f"https://img/{i}.jpg"]) for i in range(4)]
    days = [{"day": n, "date": f"November {n}", "activities": activities} for n in range(1, 4)]
    requested = []

    def broken_loader(url):
        requested.append(url)
        return None

    export = export_document(_itinerary(days), image_loader=broken_loader)

    assert export.content.startswith(b"%PDF")
    assert export.page_count > 1
    assert export.filename == "Goa-Budget-itinerary.pdf"
    assert len(requested) == 12
