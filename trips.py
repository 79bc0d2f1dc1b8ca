from typing import List

from database import KeyValueStore, get_json, set_json, trips_key
from errors import NotFound
from schemas import Trip


def load_trips(store: KeyValueStore, owner_id: str) -> List[Trip]:
    return [Trip(**item) for item in get_json(store, trips_key(owner_id), [])]


def save_trips(store: KeyValueStore, owner_id: str, trips: List[Trip]) -> None:
    set_json(store, trips_key(owner_id), [t.model_dump(by_alias=True) for t in trips])


def get_trip(store: KeyValueStore, owner_id: str, trip_id: str) -> Trip:
    for trip in load_trips(store, owner_id):
        if trip.id == trip_id:
            return trip
    raise NotFound(f"Trip {trip_id} not found", "यह यात्रा नहीं मिली।")


def insert_trip(store: KeyValueStore, trip: Trip) -> Trip:
    # Newest first
    save_trips(store, trip.owner_id, [trip] + load_trips(store, trip.owner_id))
    return trip


def put_trip(store: KeyValueStore, trip: Trip) -> Trip:
    trips = load_trips(store, trip.owner_id)
    if not any(t.id == trip.id for t in trips):
        raise NotFound(f"Trip {trip.id} not found", "यह यात्रा नहीं मिली।")
    save_trips(store, trip.owner_id, [trip if t.id == trip.id else t for t in trips])
    return trip
