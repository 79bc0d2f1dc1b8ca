"""
Key-value persistence.

Values are JSON strings keyed by name. Every operation is a plain
read-modify-write with no locking; concurrent writers to the same key
resolve last-write-wins.
"""

import json
from typing import Any, Dict, Optional, Protocol

from loguru import logger

from settings import DATABASE_URL, DATABASE_NAME

REGISTRY_KEY = "travellog_registry"


def session_key(user_id: str) -> str:
    return f"travellog_user:{user_id}"


def lang_key(user_id: str) -> str:
    return f"travellog_lang:{user_id}"


def trips_key(user_id: str) -> str:
    return f"travellog_trips:{user_id}"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStore:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class MongoStore:
    """One document per key in a single collection: {_id: key, value: blob}."""

    def __init__(self, collection):
        self.collection = collection

    def get(self, key: str) -> Optional[str]:
        doc = self.collection.find_one({"_id": key})
        return doc["value"] if doc else None

    def set(self, key: str, value: str) -> None:
        self.collection.update_one({"_id": key}, {"$set": {"value": value}}, upsert=True)

    def delete(self, key: str) -> None:
        self.collection.delete_one({"_id": key})


def get_json(store: KeyValueStore, key: str, default: Any = None) -> Any:
    raw = store.get(key)
    if raw is None:
        return default
    return json.loads(raw)


def set_json(store: KeyValueStore, key: str, value: Any) -> None:
    store.set(key, json.dumps(value, ensure_ascii=False))


def connect() -> KeyValueStore:
    if DATABASE_URL and DATABASE_NAME:
        from pymongo import MongoClient

        client = MongoClient(DATABASE_URL)
        logger.info(f"Using MongoDB store: {DATABASE_NAME}")
        return MongoStore(client[DATABASE_NAME]["kv"])
    logger.info("DATABASE_URL/DATABASE_NAME not set, using in-memory store")
    return MemoryStore()


db: KeyValueStore = connect()
