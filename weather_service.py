import logging
import math
from datetime import date, datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import requests

from config import settings
from database_service import Database
from errors import InputValidationError, PersistenceError, WeatherError
from fallback import call_with_fallback, recover_on
from models.travel import WeatherForecast

logger = logging.getLogger(__name__)

MAX_RANGE_DAYS = 16

MOCK_CONDITIONS = [
    ("Clear", "Clear sunny day", "01d"),
    ("Clouds", "Partly cloudy skies", "03d"),
    ("Clouds", "Overcast conditions", "04d"),
    ("Rain", "Light rain showers", "10d"),
]


def _round(value: float) -> int:
    # Half-up, so mock forecasts match across platforms
    return int(math.floor(value + 0.5))


def mock_forecast(forecast_date: str, destination: str) -> WeatherForecast:
    """Plausible forecast derived only from the date and destination; same inputs, same output."""
    seed = sum(int(part) for part in forecast_date.split("-")) + len(destination)
    normalized = ((seed * 9301 + 49297) % 233280) / 233280
    condition, description, icon = MOCK_CONDITIONS[int(normalized * len(MOCK_CONDITIONS))]
    base_temp = 20 + normalized * 15
    return WeatherForecast(
        date=forecast_date,
        temperature_max=_round(base_temp + 5),
        temperature_min=_round(base_temp - 3),
        condition=condition,
        description=description,
        icon=icon,
        precipitation_probability=_round(normalized * 60),
        humidity=_round(50 + normalized * 30),
        wind_speed=_round(10 + normalized * 20),
    )


class WeatherService:
    """
    Daily forecasts from OpenWeather, cached per (location, date).

    Any day the live API cannot answer for gets a seeded mock forecast instead.
    """

    GEO_URL = "https://api.openweathermap.org/geo/1.0/direct"
    FORECAST_URL = "https://api.openweathermap.org/data/2.5/forecast"

    def __init__(self,
                 database: Database,
                 api_key: Optional[str] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.api_key = settings.OPENWEATHER_API_KEY if api_key is None else api_key
        self.cache = database.table("weather_forecasts")
        self.cache_ttl = timedelta(hours=settings.WEATHER_CACHE_TTL_HOURS)
        self.horizon_days = settings.WEATHER_FORECAST_HORIZON_DAYS
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.session = requests.Session()

    def get_forecast(self, destination: str, start_date: date, end_date: date,
                     country: Optional[str] = None) -> List[WeatherForecast]:
        if not destination:
            raise InputValidationError("Missing required field: destination")
        if end_date < start_date:
            raise InputValidationError("End date must be on or after start date")
        if (end_date - start_date).days >= MAX_RANGE_DAYS:
            raise InputValidationError(f"Forecasts cover at most {MAX_RANGE_DAYS} days")

        forecasts = []
        day = start_date
        while day <= end_date:
            forecasts.append(self.get_day(destination, day, country))
            day += timedelta(days=1)
        return forecasts

    def get_day(self, destination: str, day: date, country: Optional[str] = None) -> WeatherForecast:
        forecast_date = day.isoformat()
        now = self.clock()

        cached = self._cached(destination, forecast_date, now)
        if cached:
            return cached

        if not self.api_key:
            forecast = mock_forecast(forecast_date, destination)
            self._store(destination, forecast_date, forecast, country, now)
            return forecast

        days_from_now = (day - now.date()).days
        if days_from_now < 0 or days_from_now > self.horizon_days:
            return mock_forecast(forecast_date, destination)

        return call_with_fallback(
            lambda: self._fetch_and_store(destination, forecast_date, country, now),
            lambda: mock_forecast(forecast_date, destination),
            classify=recover_on(WeatherError),
            label=f"Weather lookup for {destination} on {forecast_date}",
        )

    def _fetch_and_store(self, destination: str, forecast_date: str,
                         country: Optional[str], now: datetime) -> WeatherForecast:
        forecast = self.fetch_live(destination, forecast_date)
        self._store(destination, forecast_date, forecast, country, now)
        return forecast

    def _cached(self, destination: str, forecast_date: str, now: datetime) -> Optional[WeatherForecast]:
        rows = [
            r for r in self.cache.select(location=destination, forecast_date=forecast_date)
            if r["cached_at"] >= now - self.cache_ttl
        ]
        if not rows:
            return None
        newest = max(rows, key=lambda r: r["cached_at"])
        return WeatherForecast.model_validate(newest["forecast"])

    def _store(self, destination: str, forecast_date: str, forecast: WeatherForecast,
               country: Optional[str], now: datetime) -> None:
        try:
            self.cache.insert({
                "location": destination,
                "country": country or "Unknown",
                "forecast_date": forecast_date,
                "forecast": forecast.model_dump(),
                "cached_at": now,
            })
        except PersistenceError as e:
            logger.warning(f"Could not cache forecast for {destination} on {forecast_date}: {e.message}")

    def fetch_live(self, destination: str, forecast_date: str) -> WeatherForecast:
        """Geocode the destination and aggregate the 3-hourly forecast for one date."""
        try:
            geo = self.session.get(
                self.GEO_URL,
                params={"q": destination, "limit": 1, "appid": self.api_key},
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            geo.raise_for_status()
            places = geo.json()
            if not places:
                raise WeatherError(f"Could not geocode {destination}")

            response = self.session.get(
                self.FORECAST_URL,
                params={"lat": places[0]["lat"], "lon": places[0]["lon"], "units": "metric", "appid": self.api_key},
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return aggregate_day(forecast_date, response.json().get("list", []))
        except requests.RequestException as e:
            raise WeatherError(str(e)) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise WeatherError(f"Unexpected weather response: {str(e)}") from e


def aggregate_day(forecast_date: str, slots: List[Dict[str, Any]]) -> WeatherForecast:
    day_slots = [
        s for s in slots
        if datetime.fromtimestamp(s["dt"], tz=timezone.utc).date().isoformat() == forecast_date
    ]
    if not day_slots:
        raise WeatherError(f"No forecast data for {forecast_date}")

    temps = [s["main"]["temp"] for s in day_slots]
    humidities = [s["main"]["humidity"] for s in day_slots]
    winds = [s["wind"]["speed"] for s in day_slots]
    rainy = [s for s in day_slots if "rain" in s["weather"][0]["main"].lower()]
    midday = day_slots[len(day_slots) // 2]["weather"][0]
    description = midday["description"]

    return WeatherForecast(
        date=forecast_date,
        temperature_max=_round(max(temps)),
        temperature_min=_round(min(temps)),
        condition=midday["main"],
        description=description[:1].upper() + description[1:],
        icon=midday["icon"],
        precipitation_probability=_round(len(rainy) / len(day_slots) * 100),
        humidity=_round(sum(humidities) / len(humidities)),
        wind_speed=_round(max(winds) * 3.6),
    )
