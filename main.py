import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import Body, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from auth_service import AuthService
from config import settings
from database_service import Database
from errors import InputValidationError, TravelPlannerError
from export_service import ExportFile, export_calendar, export_document
from guest_itinerary_service import GuestSessionRegistry
from image_service import ImageService
from itinerary_service import ItineraryGenerationService, ItineraryService
from llm_service import LLMService
from models.travel import Activity, CamelModel
from package_service import PackageVariationService
from profile_service import ProfileService
from recommendation_service import DestinationRecommendationService
from refine_service import RefineService
from visit_counter_service import VisitCounterService
from weather_service import WeatherService

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

# Initialize services
database = Database()
auth_service = AuthService()
llm_service = LLMService()
profile_service = ProfileService(database)
itinerary_service = ItineraryService(database)
image_service = ImageService(database)
weather_service = WeatherService(database)
visit_counter_service = VisitCounterService(database)
guest_sessions = GuestSessionRegistry(database, settings.GUEST_STORAGE_DIR, settings.GUEST_SESSION_CACHE_SIZE)
generation_service = ItineraryGenerationService(llm_service, itinerary_service, profile_service)
package_service = PackageVariationService(llm_service, profile_service)
recommendation_service = DestinationRecommendationService(llm_service, profile_service, image_service)
refine_service = RefineService(llm_service, itinerary_service, database)

app = FastAPI(title="Fitinerary API")

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.0f}ms)")
    return response


@app.exception_handler(TravelPlannerError)
async def travel_planner_error_handler(request: Request, exc: TravelPlannerError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Models
class GenerateItineraryModel(CamelModel):
    destination: str
    trip_brief: Optional[str] = None
    destination_image_url: Optional[str] = None


class RefineModel(CamelModel):
    message: str


class RecommendModel(CamelModel):
    seed: Optional[str] = None


class DestinationImageModel(CamelModel):
    destination_name: str
    country: str = ""


class ActivityImagesModel(CamelModel):
    destination: str
    activities: List[Activity]


class WeatherRequestModel(CamelModel):
    destination: str
    start_date: date
    end_date: date
    country: Optional[str] = None


def _download(export: ExportFile) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


def _require_guest_session(session_id: Optional[str]) -> str:
    if not session_id:
        raise InputValidationError("Missing X-Guest-Session header")
    return session_id


# Routes
@app.get("/")
async def root():
    return {"message": "Welcome to the Fitinerary API"}


@app.get("/api")
async def api_root():
    return {"message": "API is running"}


@app.post("/api/guest/session")
async def create_guest_session(x_guest_session: Optional[str] = Header(None)):
    try:
        store = guest_sessions.get(x_guest_session)
        return {"sessionId": store.session_id}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/guest/itineraries")
async def get_guest_itineraries(x_guest_session: Optional[str] = Header(None)):
    try:
        store = guest_sessions.get(_require_guest_session(x_guest_session))
        return {"itineraries": [item.model_dump() for item in store.get_guest_itineraries()]}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/guest/itineraries/{itinerary_id}")
async def get_guest_itinerary(itinerary_id: str, x_guest_session: Optional[str] = Header(None)):
    try:
        store = guest_sessions.get(_require_guest_session(x_guest_session))
        return store.get_guest_itinerary(itinerary_id).model_dump()
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/guest/itineraries/{itinerary_id}/export/ics")
def export_guest_itinerary_calendar(itinerary_id: str, x_guest_session: Optional[str] = Header(None)):
    try:
        store = guest_sessions.get(_require_guest_session(x_guest_session))
        return _download(export_calendar(store.get_guest_itinerary(itinerary_id)))
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/guest/itineraries/{itinerary_id}/export/pdf")
def export_guest_itinerary_document(itinerary_id: str, x_guest_session: Optional[str] = Header(None)):
    try:
        store = guest_sessions.get(_require_guest_session(x_guest_session))
        return _download(export_document(store.get_guest_itinerary(itinerary_id)))
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/guest/migrate")
async def migrate_guest_itineraries(authorization: Optional[str] = Header(None),
                                    x_guest_session: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        store = guest_sessions.get(_require_guest_session(x_guest_session))
        migrated = store.migrate_guest_itineraries_to_user(user_id)
        return {"migrated": migrated}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/profile")
async def get_profile(authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        profile = profile_service.get(user_id)
        return {"profile": profile.model_dump(mode="json") if profile else None}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.put("/api/profile")
async def update_profile(data: Dict[str, Any] = Body(...), authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        profile = profile_service.upsert(user_id, data)
        return {"profile": profile.model_dump(mode="json")}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/itinerary/generate")
async def generate_itinerary(request: GenerateItineraryModel,
                             authorization: Optional[str] = Header(None),
                             x_guest_session: Optional[str] = Header(None)):
    try:
        user_id = auth_service.resolve(authorization)
        guest_store = None if user_id else guest_sessions.get(x_guest_session)

        result = await generation_service.generate(
            request.destination,
            trip_brief=request.trip_brief,
            destination_image_url=request.destination_image_url,
            user_id=user_id,
            guest_store=guest_store,
        )
        if guest_store is not None:
            result["guestSessionId"] = guest_store.session_id
        return result
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/itineraries")
async def list_itineraries(authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return {"itineraries": [i.model_dump() for i in itinerary_service.list_for_user(user_id)]}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/itineraries/{itinerary_id}")
async def get_itinerary(itinerary_id: str, authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return itinerary_service.get(user_id, itinerary_id).model_dump()
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.delete("/api/itineraries/{itinerary_id}")
async def delete_itinerary(itinerary_id: str, authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        itinerary_service.delete(user_id, itinerary_id)
        return {"deleted": itinerary_id}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/itineraries/{itinerary_id}/refine")
async def refine_itinerary(itinerary_id: str, request: RefineModel, authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return await refine_service.refine(user_id, itinerary_id, request.message)
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/itineraries/{itinerary_id}/export/ics")
def export_itinerary_calendar(itinerary_id: str, authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return _download(export_calendar(itinerary_service.get(user_id, itinerary_id)))
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/itineraries/{itinerary_id}/export/pdf")
def export_itinerary_document(itinerary_id: str, authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return _download(export_document(itinerary_service.get(user_id, itinerary_id)))
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/packages/generate")
async def generate_packages(authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return await package_service.generate(user_id)
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/destinations/recommend")
async def recommend_destinations(request: Optional[RecommendModel] = None,
                                 authorization: Optional[str] = Header(None)):
    try:
        user_id = auth_service.require_user(authorization)
        return await recommendation_service.recommend(user_id, seed=request.seed if request else None)
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/destination-image")
def get_destination_image(request: DestinationImageModel):
    try:
        if not request.destination_name.strip():
            raise InputValidationError("Destination name is required")
        return image_service.get_destination_image(request.destination_name, request.country).to_json()
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/activity-images")
def get_activity_images(request: ActivityImagesModel):
    try:
        images = [image_service.get_activity_images(a, request.destination) for a in request.activities]
        return {"images": images}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/api/weather")
def get_weather(request: WeatherRequestModel):
    try:
        forecasts = weather_service.get_forecast(
            request.destination, request.start_date, request.end_date, request.country)
        return {"forecasts": [f.to_json() for f in forecasts]}
    except TravelPlannerError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/api/visits")
async def get_visits():
    return {"visit_count": visit_counter_service.get()}


@app.post("/api/visits")
async def track_visit():
    return {"visit_count": visit_counter_service.increment()}


# Run the server
if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
