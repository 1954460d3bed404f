import itertools
import json
import logging
import os
import re
import time
from collections import OrderedDict
from typing import Any, Dict, List, Optional

from config import settings
from database_service import Database
from errors import InputValidationError, NotFoundError, PersistenceError
from models.travel import GuestItinerary
from session_service import (
    GUEST_ITINERARIES_KEY, GUEST_SESSION_KEY, JsonFileStorage, KeyValueStorage, MemoryStorage,
    generate_session_id, get_or_create_session_id
)

logger = logging.getLogger(__name__)

TEMP_ID_PREFIX = "temp_"


class GuestItineraryStore:
    """
    Itineraries created by one anonymous session.

    Remote rows in ``guest_itineraries`` are keyed by session id and mirrored
    into the session's local storage. The store is owned by a single client
    context and is not safe for concurrent writers.
    """

    def __init__(self, database: Database, storage: KeyValueStorage,
                 session_id: Optional[str] = None):
        self.remote = database.table("guest_itineraries")
        self.user_itineraries = database.table("itineraries")
        self.storage = storage
        self.session_id = session_id or get_or_create_session_id(storage)
        self._itineraries: List[GuestItinerary] = []
        self._temp_ids = itertools.count(1)

    def load(self) -> List[GuestItinerary]:
        """Populate in-memory state from the remote table, using the local mirror as cache/fallback."""
        mirrored = self._read_mirror()
        try:
            rows = sorted(self.remote.select(session_id=self.session_id),
                          key=lambda r: r["created_at"])
        except PersistenceError as e:
            logger.warning(f"Could not load guest itineraries for {self.session_id}: {e.message}")
            self._itineraries = mirrored
            return self.get_guest_itineraries()

        remote_by_id = {row["id"]: self._from_row(row) for row in rows}
        merged = []
        for item in mirrored:
            merged.append(remote_by_id.pop(item.id, item))
        merged.extend(remote_by_id.values())
        self._itineraries = merged
        self._write_mirror()
        return self.get_guest_itineraries()

    def add_guest_itinerary(self, itinerary: Dict[str, Any]) -> str:
        days = itinerary.get("days_json") or []
        try:
            row = self.remote.insert({
                "session_id": self.session_id,
                "destination": itinerary["destination"],
                "destination_hero_image_url": itinerary.get("destination_hero_image_url"),
                "trip_brief": "",
                "tier": itinerary["tier"],
                "days_json": days,
                "total_cost": itinerary["total_cost"],
                "duration_days": len(days),
            })[0]
            itinerary_id = row["id"]
        except PersistenceError as e:
            itinerary_id = f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}_{next(self._temp_ids)}"
            logger.warning(f"Error saving guest itinerary to database, keeping it locally as {itinerary_id}: {e.message}")

        self._itineraries.append(GuestItinerary(
            id=itinerary_id,
            destination=itinerary["destination"],
            tier=itinerary["tier"],
            total_cost=itinerary["total_cost"],
            days_json=days,
            duration_days=len(days),
            destination_hero_image_url=itinerary.get("destination_hero_image_url"),
        ))
        self._write_mirror()
        return itinerary_id

    def get_guest_itineraries(self) -> List[GuestItinerary]:
        return [item.model_copy(deep=True) for item in self._itineraries]

    def get_guest_itinerary(self, itinerary_id: str) -> GuestItinerary:
        for item in self._itineraries:
            if item.id == itinerary_id:
                return item.model_copy(deep=True)
        raise NotFoundError("Itinerary not found")

    def clear_guest_itineraries(self) -> None:
        self._itineraries = []
        try:
            self.storage.remove_item(GUEST_ITINERARIES_KEY)
        except Exception as e:
            logger.warning(f"Could not clear local guest itineraries: {str(e)}")

    def migrate_guest_itineraries_to_user(self, user_id: str) -> int:
        """
        Re-own every guest itinerary under ``user_id`` and clear the guest state.

        Rows already migrated from the same guest record are not inserted again,
        so a retry after an interrupted migration does not duplicate them.
        Any insert failure aborts the migration and leaves guest state intact.
        """
        if not self._itineraries:
            return 0

        already_migrated = {
            row.get("migrated_from_guest_id")
            for row in self.user_itineraries.select(user_id=user_id)
        }
        records = [
            {
                "user_id": user_id,
                "destination": item.destination,
                "destination_hero_image_url": item.destination_hero_image_url,
                "trip_brief": "",
                "tier": item.tier,
                "days_json": item.days_json,
                "total_cost": item.total_cost,
                "duration_days": len(item.days_json),
                "migrated_from_guest_id": item.id,
            }
            for item in self._itineraries
            if item.id not in already_migrated
        ]

        if records:
            try:
                self.user_itineraries.insert(records)
            except PersistenceError as e:
                logger.error(f"Migration of {len(records)} guest itineraries to {user_id} failed: {e.message}")
                raise

        logger.info(f"Migrated {len(records)} guest itineraries from {self.session_id} to {user_id}")
        self.clear_guest_itineraries()
        return len(records)

    @staticmethod
    def _from_row(row: Dict[str, Any]) -> GuestItinerary:
        return GuestItinerary(
            id=row["id"],
            destination=row["destination"],
            tier=row["tier"],
            total_cost=row["total_cost"],
            days_json=row["days_json"],
            duration_days=len(row["days_json"] or []),
            destination_hero_image_url=row.get("destination_hero_image_url"),
        )

    def _read_mirror(self) -> List[GuestItinerary]:
        try:
            stored = self.storage.get_item(GUEST_ITINERARIES_KEY)
            if not stored:
                return []
            return [GuestItinerary.model_validate(item) for item in json.loads(stored)]
        except Exception as e:
            logger.error(f"Error loading guest itineraries: {str(e)}")
            return []

    def _write_mirror(self) -> None:
        try:
            self.storage.set_item(
                GUEST_ITINERARIES_KEY,
                json.dumps([item.model_dump() for item in self._itineraries]),
            )
        except Exception as e:
            logger.error(f"Error saving to local storage: {str(e)}")


class GuestSessionRegistry:
    """
    One GuestItineraryStore per guest session id, created on first use.

    Each session's local mirror lives in memory, or in ``{storage_dir}/{session_id}.json``
    when a storage directory is configured. At most ``max_sessions`` stores are
    kept; the least recently used one is dropped first and is rebuilt from the
    remote table (and its mirror file, if any) the next time it is asked for.
    """

    SESSION_ID_PATTERN = re.compile(r"^guest_\d+_[a-z0-9]+$")

    def __init__(self, database: Database, storage_dir: str = "", max_sessions: Optional[int] = None):
        self.database = database
        self.storage_dir = storage_dir
        self.max_sessions = max_sessions or settings.GUEST_SESSION_CACHE_SIZE
        self._stores: "OrderedDict[str, GuestItineraryStore]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._stores)

    def _storage_for(self, session_id: str) -> KeyValueStorage:
        if self.storage_dir:
            return JsonFileStorage(os.path.join(self.storage_dir, f"{session_id}.json"))
        return MemoryStorage()

    def get(self, session_id: Optional[str] = None) -> GuestItineraryStore:
        """The store for ``session_id``, or a brand new guest session when none is given."""
        if session_id and session_id in self._stores:
            self._stores.move_to_end(session_id)
            return self._stores[session_id]
        if session_id and not self.SESSION_ID_PATTERN.match(session_id):
            raise InputValidationError("Invalid guest session id")

        session_id = session_id or generate_session_id()
        storage = self._storage_for(session_id)
        if not storage.get_item(GUEST_SESSION_KEY):
            storage.set_item(GUEST_SESSION_KEY, session_id)

        store = GuestItineraryStore(self.database, storage)
        store.load()
        self._stores[store.session_id] = store
        while len(self._stores) > self.max_sessions:
            evicted, _ = self._stores.popitem(last=False)
            logger.info(f"Evicted guest session {evicted} from memory")
        return store
