"""
Trip and day state transitions.

Every function here is pure: it takes the current Trip (or Day) and returns
a new one, leaving its arguments untouched. The API layer loads state from
the store, applies one transition, and writes the result back.
"""

import math
import time
import uuid
from typing import Iterable, List, Optional

from errors import NotFound, ValidationError
from schemas import (
    MEALS,
    Day,
    FoodLogistics,
    Language,
    Logistics,
    LogisticsUpdate,
    MealInfo,
    MealUpdate,
    NarrativeResult,
    Section,
    Trip,
    TripStatus,
)
from settings import DEFAULT_COVER_IMAGE

PLACEHOLDER_TITLES = {"en": "New Journey", "hi": "नई यात्रा"}
PLACEHOLDER_LOCATIONS = {"en": "Unknown", "hi": "अनजान जगह"}
FIRST_DAY_SUMMARY = {"en": "Awaiting your first story...", "hi": "आपकी पहली कहानी का इंतज़ार है..."}
NEXT_DAY_SUMMARY = {"en": "Starting a new adventure...", "hi": "एक नया रोमांच शुरू हो रहा है..."}


def _stamp() -> int:
    return int(time.time() * 1000)


def _t(table: dict, lang: Language) -> str:
    return table.get(lang, table["en"])


# ----------------------
# Construction
# ----------------------

def new_day(day_number: int, lang: Language = "en") -> Day:
    summary = FIRST_DAY_SUMMARY if day_number == 1 else NEXT_DAY_SUMMARY
    return Day(
        id=f"day-{day_number}-{_stamp()}",
        day_number=day_number,
        summary=_t(summary, lang),
    )


def new_trip(owner_id: str, lang: Language = "en") -> Trip:
    return Trip(
        id=f"trip-{_stamp()}-{uuid.uuid4().hex[:6]}",
        owner_id=owner_id,
        title=_t(PLACEHOLDER_TITLES, lang),
        location=_t(PLACEHOLDER_LOCATIONS, lang),
        cover_image=DEFAULT_COVER_IMAGE,
        days=[new_day(1, lang)],
        title_is_placeholder=True,
        location_is_placeholder=True,
    )


def add_day(trip: Trip, lang: Language = "en") -> Trip:
    day = new_day(len(trip.days) + 1, lang)
    return trip.model_copy(update={"days": trip.days + [day]})


# ----------------------
# Lookup helpers
# ----------------------

def get_day(trip: Trip, day_number: int) -> Day:
    for day in trip.days:
        if day.day_number == day_number:
            return day
    raise NotFound(f"Day {day_number} not found in trip {trip.id}", f"दिन {day_number} नहीं मिला।")


def _replace_day(trip: Trip, day: Day) -> Trip:
    days = [day if d.day_number == day.day_number else d for d in trip.days]
    return trip.model_copy(update={"days": days})


def title_is_placeholder(trip: Trip) -> bool:
    # Trips written before the flag existed carry None; fall back to the literal defaults.
    if trip.title_is_placeholder is not None:
        return trip.title_is_placeholder
    return trip.title in PLACEHOLDER_TITLES.values()


def location_is_placeholder(trip: Trip) -> bool:
    if trip.location_is_placeholder is not None:
        return trip.location_is_placeholder
    return trip.location in PLACEHOLDER_LOCATIONS.values()


# ----------------------
# Merge engine
# ----------------------

def _valid_cost(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value >= 0
    )


def _pick_text(new: Optional[str], current: str) -> str:
    return new if new and new.strip() else current


def _pick_cost(new, current: float) -> float:
    return float(new) if _valid_cost(new) else current


def merge_logistics(current: Logistics, update: Optional[LogisticsUpdate]) -> Logistics:
    if update is None:
        return current.model_copy()
    return Logistics(
        hotel_name=_pick_text(update.hotel_name, current.hotel_name),
        hotel_cost=_pick_cost(update.hotel_cost, current.hotel_cost),
        transport_mode=_pick_text(update.transport_mode, current.transport_mode),
        transport_cost=_pick_cost(update.transport_cost, current.transport_cost),
    )


def merge_meal(current: MealInfo, update: Optional[MealUpdate]) -> MealInfo:
    if update is None:
        return current.model_copy()
    return MealInfo(
        name=_pick_text(update.name, current.name),
        cost=_pick_cost(update.cost, current.cost),
        restaurant=_pick_text(update.restaurant, current.restaurant),
    )


def merge_food(current: FoodLogistics, update) -> FoodLogistics:
    return FoodLogistics(**{
        meal: merge_meal(getattr(current, meal), getattr(update, meal) if update else None)
        for meal in MEALS
    })


def build_sections(result: NarrativeResult) -> List[Section]:
    stamp = uuid.uuid4().hex[:12]
    return [
        Section(
            id=f"section-{idx}-{stamp}",
            paragraph_en=s.paragraph_en,
            paragraph_hi=s.paragraph_hi,
            topic=s.topic,
        )
        for idx, s in enumerate(result.sections)
    ]


def merge_day_update(day: Day, transcript_increment: str, result: NarrativeResult) -> Day:
    """Fold one generated result into a day.

    Sections and transcript only ever grow. Summary, logistics and meals
    take a generated value field by field, keeping the current value
    wherever the result is silent or empty. An empty increment leaves the
    day as it is.
    """
    increment = (transcript_increment or "").strip()
    if not increment:
        return day.model_copy()
    return day.model_copy(update={
        "raw_transcript": day.raw_transcript + " " + increment,
        "sections": day.sections + build_sections(result),
        "summary": _pick_text(result.summary, day.summary),
        "logistics": merge_logistics(day.logistics, result.logistics),
        "food_logistics": merge_food(day.food_logistics, result.food_logistics),
    })


def apply_dictation(trip: Trip, day_number: int, transcript_increment: str, result: NarrativeResult) -> Trip:
    """Merge a result into one day and adopt title/location suggestions.

    Suggestions only replace a title or location still holding its
    placeholder; once set, by the user or an earlier suggestion, they stick.
    """
    day = get_day(trip, day_number)
    if not (transcript_increment or "").strip():
        return trip.model_copy()

    updated = _replace_day(trip, merge_day_update(day, transcript_increment, result))
    changes = {}
    if title_is_placeholder(trip) and result.suggested_title and result.suggested_title.strip():
        changes["title"] = result.suggested_title.strip()
        changes["title_is_placeholder"] = False
    if location_is_placeholder(trip) and result.suggested_location and result.suggested_location.strip():
        changes["location"] = result.suggested_location.strip()
        changes["location_is_placeholder"] = False
    return updated.model_copy(update=changes) if changes else updated


# ----------------------
# Manual edits
# ----------------------

def _check_cost(value) -> None:
    if value is not None and not _valid_cost(value):
        raise ValidationError("Costs must be non-negative numbers", "खर्च शून्य या उससे अधिक संख्या होना चाहिए।")


def update_logistics(trip: Trip, day_number: int, patch: LogisticsUpdate) -> Trip:
    _check_cost(patch.hotel_cost)
    _check_cost(patch.transport_cost)
    day = get_day(trip, day_number)
    logistics = day.logistics.model_copy(update=patch.model_dump(exclude_none=True))
    return _replace_day(trip, day.model_copy(update={"logistics": logistics}))


def update_meal(trip: Trip, day_number: int, meal: str, patch: MealUpdate) -> Trip:
    if meal not in MEALS:
        raise ValidationError(f"Unknown meal: {meal}", f"अज्ञात भोजन: {meal}")
    _check_cost(patch.cost)
    day = get_day(trip, day_number)
    current = getattr(day.food_logistics, meal)
    food = day.food_logistics.model_copy(update={
        meal: current.model_copy(update=patch.model_dump(exclude_none=True)),
    })
    return _replace_day(trip, day.model_copy(update={"food_logistics": food}))


def attach_section_image(trip: Trip, day_number: int, section_id: str, image: str) -> Trip:
    day = get_day(trip, day_number)
    if not any(s.id == section_id for s in day.sections):
        raise NotFound(f"Section {section_id} not found", "यह हिस्सा नहीं मिला।")
    sections = [s.model_copy(update={"image": image}) if s.id == section_id else s for s in day.sections]
    return _replace_day(trip, day.model_copy(update={"sections": sections}))


def complete_day(trip: Trip, day_number: int) -> Trip:
    day = get_day(trip, day_number)
    return _replace_day(trip, day.model_copy(update={"is_completed": True}))


def set_cover_image(trip: Trip, image: str) -> Trip:
    if not image or not image.strip():
        raise ValidationError("Cover image reference is empty", "कवर चित्र खाली है।")
    return trip.model_copy(update={"cover_image": image})


def update_trip_details(
    trip: Trip,
    title: Optional[str] = None,
    location: Optional[str] = None,
    is_public: Optional[bool] = None,
    status: Optional[TripStatus] = None,
) -> Trip:
    changes = {}
    if title is not None:
        if not title.strip():
            raise ValidationError("Title cannot be empty", "शीर्षक खाली नहीं हो सकता।")
        changes.update(title=title.strip(), title_is_placeholder=False)
    if location is not None:
        if not location.strip():
            raise ValidationError("Location cannot be empty", "जगह खाली नहीं हो सकती।")
        changes.update(location=location.strip(), location_is_placeholder=False)
    if is_public is not None:
        changes["is_public"] = is_public
    if status is not None:
        changes["status"] = status
    return trip.model_copy(update=changes)


# ----------------------
# Totals and listing
# ----------------------

def daily_total(day: Day) -> float:
    food = day.food_logistics
    return (
        day.logistics.hotel_cost
        + day.logistics.transport_cost
        + food.breakfast.cost
        + food.lunch.cost
        + food.dinner.cost
    )


def trip_total(trip: Trip) -> float:
    return sum(daily_total(day) for day in trip.days)


def filter_trips(trips: Iterable[Trip], public_only: bool = False, query: str = "") -> List[Trip]:
    q = (query or "").strip().lower()
    return [
        t for t in trips
        if (t.is_public or not public_only)
        and (not q or q in t.title.lower() or q in t.location.lower())
    ]
