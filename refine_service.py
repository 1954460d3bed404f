import json
import logging
from typing import Any, Dict

from database_service import Database
from itinerary_service import ItineraryService
from llm_service import LLMService, extract_json, validate_payload
from models.travel import RefinedItinerary

logger = logging.getLogger(__name__)

REFINED_REPLY = "I've updated your itinerary based on your preferences. Take a look!"


class RefineService:
    """Conversational edits to a saved itinerary, one user request at a time."""

    SYSTEM_PROMPT = ("You are a luxury travel planner refining itineraries. Respond with valid JSON matching "
                     "the current structure. Keep venue names specific and maintain the overall itinerary format.")

    def __init__(self, llm: LLMService, itineraries: ItineraryService, database: Database):
        self.llm = llm
        self.itineraries = itineraries
        self.history = database.table("conversation_history")

    def conversation(self, itinerary_id: str):
        rows = sorted(self.history.select(itinerary_id=itinerary_id), key=lambda r: r["created_at"])
        return [{"user_message": r["user_message"], "ai_response": r["ai_response"]} for r in rows]

    async def refine(self, user_id: str, itinerary_id: str, message: str) -> Dict[str, Any]:
        itinerary = self.itineraries.get(user_id, itinerary_id)
        current = {"days": itinerary.days_json, "totalCost": itinerary.total_cost}

        prompt = (f"Current itinerary: {json.dumps(current)}\n\n"
                  f"Previous conversation: {json.dumps(self.conversation(itinerary_id))}\n\n"
                  f"User request: {message}\n\n"
                  "Modify the itinerary according to the request and return the complete updated itinerary "
                  'as {"days": [...], "totalCost": number} in the same JSON structure.')

        content = await self.llm.complete_json(self.SYSTEM_PROMPT, prompt, temperature=0.7)
        refined = validate_payload(RefinedItinerary, extract_json(content, "{"))

        days = [d.to_json() for d in refined.days]
        total_cost = refined.total_cost if refined.total_cost is not None else itinerary.total_cost

        self.history.insert({
            "itinerary_id": itinerary_id,
            "user_message": message,
            "ai_response": REFINED_REPLY,
        })
        self.itineraries.update_days(itinerary_id, days, total_cost)
        logger.info(f"Refined itinerary {itinerary_id} ({len(days)} days)")

        return {
            "itinerary": {"days": days, "totalCost": total_cost},
            "message": REFINED_REPLY,
        }
