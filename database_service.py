import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from errors import PersistenceError

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class Table:
    """
    A keyed row collection with owner-key filtering.

    Rows are plain dicts; callers always receive copies so nothing outside the
    table can mutate stored state.
    """

    def __init__(self, name: str):
        self.name = name
        self._rows: List[Row] = []

    @staticmethod
    def _matches(row: Row, filters: Dict[str, Any]) -> bool:
        return all(row.get(key) == value for key, value in filters.items())

    def insert(self, rows: Union[Row, Iterable[Row]]) -> List[Row]:
        batch = [rows] if isinstance(rows, dict) else list(rows)
        now = datetime.now(timezone.utc)
        inserted = []
        for row in batch:
            stored = copy.deepcopy(row)
            stored.setdefault("id", str(uuid.uuid4()))
            stored.setdefault("created_at", now)
            inserted.append(stored)
        self._rows.extend(inserted)
        return copy.deepcopy(inserted)

    def select(self, **filters) -> List[Row]:
        return [copy.deepcopy(r) for r in self._rows if self._matches(r, filters)]

    def maybe_single(self, **filters) -> Optional[Row]:
        rows = self.select(**filters)
        if len(rows) > 1:
            raise PersistenceError(f"Expected at most one row in '{self.name}', found {len(rows)}")
        return rows[0] if rows else None

    def single(self, **filters) -> Row:
        rows = self.select(**filters)
        if len(rows) != 1:
            raise PersistenceError(f"Expected exactly one row in '{self.name}', found {len(rows)}")
        return rows[0]

    def update(self, values: Row, **filters) -> List[Row]:
        updated = []
        for row in self._rows:
            if self._matches(row, filters):
                row.update(copy.deepcopy(values))
                row["updated_at"] = datetime.now(timezone.utc)
                updated.append(copy.deepcopy(row))
        return updated

    def delete(self, **filters) -> int:
        before = len(self._rows)
        self._rows = [r for r in self._rows if not self._matches(r, filters)]
        return before - len(self._rows)


class Database:
    """In-process stand-in for the hosted relational store."""

    TABLES = (
        "itineraries",
        "guest_itineraries",
        "user_profiles",
        "activity_images",
        "weather_forecasts",
        "site_visits",
        "conversation_history",
    )

    def __init__(self):
        self._tables: Dict[str, Table] = {name: Table(name) for name in self.TABLES}

    def table(self, name: str) -> Table:
        try:
            return self._tables[name]
        except KeyError:
            raise PersistenceError(f"Unknown table '{name}'")
