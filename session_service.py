import json
import logging
import os
import random
import string
import time
from typing import Dict, Optional

logger = logging.getLogger(__name__)

GUEST_SESSION_KEY = "fitinerary_guest_session"
GUEST_ITINERARIES_KEY = "fitinerary_guest_itineraries"

_ALPHABET = string.ascii_lowercase + string.digits


class KeyValueStorage:
    """Durable client-side string storage, shaped like a browser's localStorage."""

    def get_item(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set_item(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove_item(self, key: str) -> None:
        raise NotImplementedError


class MemoryStorage(KeyValueStorage):

    def __init__(self):
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class JsonFileStorage(KeyValueStorage):
    """Keeps every key in one JSON object on disk; rewritten on each change."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _save(self, items: Dict[str, str]) -> None:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(items, f)

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._save(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._save(items)


def generate_session_id() -> str:
    suffix = "".join(random.choice(_ALPHABET) for _ in range(13))
    return f"guest_{int(time.time() * 1000)}_{suffix}"


def get_or_create_session_id(storage: KeyValueStorage) -> str:
    """
    Return the guest session id stored under GUEST_SESSION_KEY, creating it if absent.

    A storage read failure yields a brand new session instead of an error; the
    previous session's itineraries are then simply no longer reachable from here.
    """
    try:
        session_id = storage.get_item(GUEST_SESSION_KEY)
    except Exception as e:
        logger.warning(f"Could not read guest session from storage: {str(e)}")
        session_id = None

    if session_id:
        return session_id

    session_id = generate_session_id()
    try:
        storage.set_item(GUEST_SESSION_KEY, session_id)
    except Exception as e:
        logger.warning(f"Could not persist guest session {session_id}: {str(e)}")
    return session_id
