"""
Calendar and PDF exports of a saved itinerary.

Day and activity dates in itineraries are informal ("Saturday", "November 8",
"9:00 AM"), so calendar export resolves them against the current year with a
few documented defaults. Both exports are pure functions of the itinerary
apart from the best-effort image downloads embedded in the PDF.
"""
import io
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

import requests
from icalendar import Calendar, Event
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfgen import canvas

from config import settings
from errors import ExportError
from models.travel import Activity, Day, ItineraryRecord

logger = logging.getLogger(__name__)

DEFAULT_START_HOUR = 9
DEFAULT_DURATION_MINUTES = 60

MONTHS = {
    "january": 1, "jan": 1, "february": 2, "feb": 2, "march": 3, "mar": 3,
    "april": 4, "apr": 4, "may": 5, "june": 6, "jun": 6,
    "july": 7, "jul": 7, "august": 8, "aug": 8, "september": 9, "sep": 9, "sept": 9,
    "october": 10, "oct": 10, "november": 11, "nov": 11, "december": 12, "dec": 12,
}

_MONTH_DAY = re.compile(r"([A-Za-z]+)\s+(\d{1,2})\b")
_CLOCK = re.compile(r"^\s*(\d{1,2})(?::(\d{1,2}))?\s*([AaPp]\.?[Mm]\.?)?")
_HOURS = re.compile(r"(\d+(?:\.\d+)?)\s*h(?:ou)?rs?\b", re.IGNORECASE)
_MINUTES = re.compile(r"(\d+)\s*min", re.IGNORECASE)

BRAND_COLOR = (20 / 255, 184 / 255, 166 / 255)


@dataclass
class CalendarEvent:
    start: datetime
    end: datetime
    title: str
    description: str
    location: str
    status: str = "CONFIRMED"


@dataclass
class ExportFile:
    filename: str
    content: bytes
    media_type: str
    page_count: int = 1


def parse_duration_minutes(duration: Optional[str]) -> int:
    if not duration:
        return DEFAULT_DURATION_MINUTES
    minutes = 0
    hours = _HOURS.search(duration)
    if hours:
        minutes += int(float(hours.group(1)) * 60)
    mins = _MINUTES.search(duration)
    if mins:
        minutes += int(mins.group(1))
    return minutes or DEFAULT_DURATION_MINUTES


def resolve_day(day_label: str, day_number: int, today: date):
    """(month, day) named in the label, or today shifted by the day's position in the trip."""
    match = _MONTH_DAY.search(day_label or "")
    if match and match.group(1).lower() in MONTHS:
        return MONTHS[match.group(1).lower()], int(match.group(2))
    fallback = today + timedelta(days=max(day_number, 1) - 1)
    return fallback.month, fallback.day


def parse_clock(time_string: Optional[str]):
    """(hour, minute) on a 24h clock; 9:00 when the string has no recognisable time."""
    match = _CLOCK.match(time_string or "")
    if not match:
        return DEFAULT_START_HOUR, 0
    hour = int(match.group(1))
    minute = int(match.group(2) or 0)
    period = (match.group(3) or "").replace(".", "").upper()
    if period == "PM" and hour != 12:
        hour += 12
    elif period == "AM" and hour == 12:
        hour = 0
    return hour, minute


def activity_start(day: Day, activity: Activity, now: datetime) -> datetime:
    month, day_of_month = resolve_day(day.date, day.day, now.date())
    hour, minute = parse_clock(activity.time)
    # Raises ValueError for impossible combinations such as "February 30" or "25:00"
    return datetime(now.year, month, day_of_month, hour, minute)


def _money(amount: int) -> str:
    return f"{settings.CURRENCY_SYMBOL}{amount:,}"


def _document_money(amount: int) -> str:
    # The built-in PDF fonts have no rupee glyph
    return _money(amount).replace("\u20b9", "Rs. ")


def to_calendar_events(itinerary: ItineraryRecord, now: Optional[datetime] = None) -> List[CalendarEvent]:
    now = now or datetime.now()
    events = []
    for day in itinerary.days:
        if not day.activities:
            logger.warning(f"Day {day.day} has no activities")
            continue
        for activity in day.activities:
            if not activity.name.strip():
                logger.warning(f"Skipping unnamed activity on day {day.day}")
                continue
            try:
                start = activity_start(day, activity, now)
            except ValueError as e:
                logger.warning(f"Skipping '{activity.name}' on {day.date!r} at {activity.time!r}: {str(e)}")
                continue
            end = start + timedelta(minutes=parse_duration_minutes(activity.duration))

            details = f"Cost: {_money(activity.cost)}\nDuration: {activity.duration or 'N/A'}"
            description = f"{activity.description}\n\n{details}" if activity.description else details
            if activity.venue and activity.location:
                location = f"{activity.venue}, {activity.location}"
            else:
                location = activity.venue or activity.location or "Location TBD"

            events.append(CalendarEvent(
                start=start, end=end, title=activity.name,
                description=description, location=location,
            ))
    if not events:
        raise ExportError("No valid events could be created from the itinerary")
    return events


def _sanitize(text: str, pattern: str, replacement: str) -> str:
    return re.sub(pattern, replacement, text)


def calendar_filename(itinerary: ItineraryRecord) -> str:
    destination = _sanitize(itinerary.destination, r"[^a-zA-Z0-9\-_\s]", "")
    destination = _sanitize(destination, r"\s+", "-")
    return f"{destination}-{itinerary.tier}-itinerary.ics"


def document_filename(itinerary: ItineraryRecord) -> str:
    destination = _sanitize(itinerary.destination, r"[^a-zA-Z0-9\-_]", "-")
    return f"{destination}-{itinerary.tier}-itinerary.pdf"


def export_calendar(itinerary: ItineraryRecord, now: Optional[datetime] = None) -> ExportFile:
    if not itinerary.days_json:
        raise ExportError("No itinerary data available to export")

    now = now or datetime.now()
    events = to_calendar_events(itinerary, now)

    try:
        cal = Calendar()
        cal.add("prodid", "-//Fitinerary//Travel Itinerary//EN")
        cal.add("version", "2.0")
        cal.add("calscale", "GREGORIAN")
        cal.add("method", "PUBLISH")
        cal.add("x-wr-calname", f"{itinerary.destination} - {itinerary.tier} Tier")
        for item in events:
            event = Event()
            event.add("uid", f"{uuid.uuid4()}@fitinerary.com")
            event.add("dtstamp", now)
            event.add("dtstart", item.start)
            event.add("dtend", item.end)
            event.add("summary", item.title)
            event.add("description", item.description)
            event.add("location", item.location)
            event.add("status", item.status)
            event.add("transp", "OPAQUE")
            cal.add_component(event)
        content = cal.to_ical()
    except Exception as e:
        logger.error(f"ICS export failed: {str(e)}")
        raise ExportError(f"Failed to export calendar: {str(e)}") from e

    logger.info(f"Exported {len(events)} calendar events for {itinerary.destination} ({itinerary.tier})")
    return ExportFile(calendar_filename(itinerary), content, "text/calendar")


def fetch_image(url: str) -> Optional[ImageReader]:
    """Download an image for embedding, or None when it cannot be fetched or decoded."""
    try:
        response = requests.get(url, timeout=settings.HTTP_TIMEOUT_SECONDS)
        response.raise_for_status()
        reader = ImageReader(io.BytesIO(response.content))
        reader.getSize()
        return reader
    except Exception as e:
        logger.warning(f"Could not load image {url[:80]}: {str(e)}")
        return None


class _DocumentWriter:
    """Top-down cursor over a reportlab canvas, measured in millimetres."""

    MARGIN = 20
    BLOCK_HEIGHT = 50
    BLOCK_GAP = 5
    IMAGE_SIZE = 28

    def __init__(self, image_loader: Callable[[str], Optional[ImageReader]]):
        self.buffer = io.BytesIO()
        self.pdf = canvas.Canvas(self.buffer, pagesize=A4)
        self.page_width = A4[0] / mm
        self.page_height = A4[1] / mm
        self.image_loader = image_loader
        self.y = self.MARGIN

    def _py(self, y: float) -> float:
        return (self.page_height - y) * mm

    def ensure_space(self, required: float) -> None:
        if self.y + required > self.page_height - self.MARGIN:
            self.pdf.showPage()
            self.y = self.MARGIN

    def text(self, x, y, value, font="Helvetica", size=11, color=(0, 0, 0), align="left"):
        self.pdf.setFont(font, size)
        self.pdf.setFillColorRGB(*color)
        if align == "center":
            self.pdf.drawCentredString(x * mm, self._py(y), value)
        elif align == "right":
            self.pdf.drawRightString(x * mm, self._py(y), value)
        else:
            self.pdf.drawString(x * mm, self._py(y), value)

    def wrapped(self, x, y, value, width, font="Helvetica", size=9, max_lines=3, color=(0, 0, 0)) -> None:
        for i, line in enumerate(simpleSplit(value, font, size, width * mm)[:max_lines]):
            self.text(x, y + i * 4, line, font=font, size=size, color=color)

    def cover(self, itinerary: ItineraryRecord) -> None:
        self.pdf.setFillColorRGB(*BRAND_COLOR)
        self.pdf.rect(0, self._py(40), self.page_width * mm, 40 * mm, stroke=0, fill=1)
        self.text(self.page_width / 2, 20, itinerary.destination, font="Helvetica-Bold", size=24,
                  color=(1, 1, 1), align="center")
        self.text(self.page_width / 2, 30, f"{itinerary.tier} Tier - {itinerary.duration_days} Day Itinerary",
                  size=12, color=(1, 1, 1), align="center")
        self.y = 50
        self.text(self.MARGIN, self.y, "Trip Summary", font="Helvetica-Bold", size=14)
        self.y += 10
        self.text(self.MARGIN, self.y, f"Destination: {itinerary.destination}")
        self.y += 7
        self.text(self.MARGIN, self.y, f"Tier: {itinerary.tier}")
        self.y += 7
        self.text(self.MARGIN, self.y, f"Total Cost: {_document_money(itinerary.total_cost)}")
        self.y += 7
        self.text(self.MARGIN, self.y, f"Duration: {itinerary.duration_days} days")
        self.y += 15

    def day_header(self, day: Day) -> None:
        self.ensure_space(30)
        self.pdf.setFillColorRGB(*BRAND_COLOR)
        self.pdf.roundRect(self.MARGIN * mm, self._py(self.y + 5), 50 * mm, 10 * mm, 3 * mm, stroke=0, fill=1)
        self.text(self.MARGIN + 25, self.y + 2, f"Day {day.day}", font="Helvetica-Bold", size=12,
                  color=(1, 1, 1), align="center")
        self.text(80, self.y + 2, day.date or "", font="Helvetica-Bold", size=12)
        self.y += 15

    def activity_block(self, activity: Activity) -> None:
        self.ensure_space(self.BLOCK_HEIGHT + self.BLOCK_GAP)
        top = self.y
        width = self.page_width - 2 * self.MARGIN
        text_width = width - self.IMAGE_SIZE - 30

        self.pdf.setStrokeColorRGB(0.78, 0.78, 0.78)
        self.pdf.setLineWidth(0.5)
        self.pdf.roundRect(self.MARGIN * mm, self._py(top + self.BLOCK_HEIGHT), width * mm,
                           self.BLOCK_HEIGHT * mm, 3 * mm, stroke=1, fill=0)

        self.wrapped(self.MARGIN + 5, top + 8, activity.name or "Activity", text_width,
                     font="Helvetica-Bold", size=11, max_lines=1)
        self.text(self.MARGIN + 5, top + 14, f"{activity.time_of_day} - {activity.time}".strip(" -"),
                  size=9, color=(0.4, 0.4, 0.4))
        self.wrapped(self.MARGIN + 5, top + 20, f"{activity.venue or 'Venue TBD'}, {activity.location}",
                     text_width, max_lines=1)
        self.wrapped(self.MARGIN + 5, top + 26, activity.description or "No description available",
                     text_width, max_lines=4)

        right = self.page_width - self.MARGIN - 5
        self.text(right, top + 8, _document_money(activity.cost), font="Helvetica-Bold", size=9,
                  color=BRAND_COLOR, align="right")
        self.text(right, top + 14, activity.duration or "", size=9, color=(0.4, 0.4, 0.4), align="right")

        if activity.images:
            image = self.image_loader(activity.images[0])
            if image is not None:
                try:
                    self.pdf.drawImage(image, (right - self.IMAGE_SIZE) * mm, self._py(top + 18 + self.IMAGE_SIZE),
                                       self.IMAGE_SIZE * mm, self.IMAGE_SIZE * mm, preserveAspectRatio=True)
                except Exception as e:
                    logger.warning(f"Could not embed image for '{activity.name}': {str(e)}")

        self.y += self.BLOCK_HEIGHT + self.BLOCK_GAP

    def footer(self) -> None:
        self.text(self.page_width / 2, self.page_height - 10, "Created with Fitinerary",
                  size=8, color=(0.6, 0.6, 0.6), align="center")

    def finish(self) -> ExportFile:
        pages = self.pdf.getPageNumber()
        self.pdf.save()
        return ExportFile("", self.buffer.getvalue(), "application/pdf", pages)


def export_document(itinerary: ItineraryRecord,
                    image_loader: Callable[[str], Optional[ImageReader]] = fetch_image) -> ExportFile:
    try:
        writer = _DocumentWriter(image_loader)
        writer.cover(itinerary)
        for day in itinerary.days:
            writer.day_header(day)
            for activity in day.activities:
                writer.activity_block(activity)
            writer.y += 5
        writer.footer()
        result = writer.finish()
    except Exception as e:
        logger.error(f"PDF export failed: {str(e)}")
        raise ExportError(f"Failed to export PDF: {str(e)}") from e

    result.filename = document_filename(itinerary)
    logger.info(f"Exported {result.page_count}-page PDF for {itinerary.destination} ({itinerary.tier})")
    return result
