import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    # API Keys
    OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "demo")
    PEXELS_API_KEY = os.getenv("PEXELS_API_KEY", "")
    OPENWEATHER_API_KEY = os.getenv("OPENWEATHER_API_KEY", "")

    # Service settings
    OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "60"))
    LLM_REQUEST_TIMEOUT_SECONDS = float(os.getenv("LLM_REQUEST_TIMEOUT_SECONDS", "60"))
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))
    WEATHER_CACHE_TTL_HOURS = int(os.getenv("WEATHER_CACHE_TTL_HOURS", "6"))
    WEATHER_FORECAST_HORIZON_DAYS = int(os.getenv("WEATHER_FORECAST_HORIZON_DAYS", "14"))

    # Guest local mirrors live in memory unless a directory is given
    GUEST_STORAGE_DIR = os.getenv("GUEST_STORAGE_DIR", "")
    GUEST_SESSION_CACHE_SIZE = int(os.getenv("GUEST_SESSION_CACHE_SIZE", "1000"))

    # Bearer tokens are HS256 JWTs issued by the auth provider; the user id is the "sub" claim
    AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET", "")
    AUTH_JWT_ALGORITHM = os.getenv("AUTH_JWT_ALGORITHM", "HS256")
    AUTH_JWT_AUDIENCE = os.getenv("AUTH_JWT_AUDIENCE", "authenticated")

    CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")

settings = Settings()
