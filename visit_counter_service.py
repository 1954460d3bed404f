import logging
from datetime import datetime, timezone

from database_service import Database

logger = logging.getLogger(__name__)


class VisitCounterService:
    """
    Site-wide visit count kept in a single ``site_visits`` row.

    Increments are read-then-write, so two simultaneous visits can be counted once.
    """

    def __init__(self, database: Database):
        self.visits = database.table("site_visits")

    def _row(self):
        row = self.visits.maybe_single()
        if row is None:
            row = self.visits.insert({"visit_count": 0, "last_updated": datetime.now(timezone.utc)})[0]
        return row

    def get(self) -> int:
        return self._row().get("visit_count") or 0

    def increment(self) -> int:
        row = self._row()
        count = (row.get("visit_count") or 0) + 1
        self.visits.update({"visit_count": count, "last_updated": datetime.now(timezone.utc)}, id=row["id"])
        return count
