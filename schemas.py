"""
Storage Schemas for TravelLog

Each Pydantic model mirrors a JSON blob kept in the key-value store.
Trips are stored per owner as a list under "travellog_trips:<user id>",
the credential registry as a single list under "travellog_registry".
Keys are camelCase on the wire and in storage (rawTranscript, hotelCost, ...);
field names are accepted on input as well.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List, Literal
from datetime import datetime, timezone

Language = Literal["en", "hi"]
TripStatus = Literal["active", "completed"]
MealName = Literal["breakfast", "lunch", "dinner"]

MEALS = ("breakfast", "lunch", "dinner")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    """Public profile. Never carries credential material."""
    id: str
    email: str = Field(..., description="Lowercased, trimmed email address")
    name: str = Field(..., description="Display name")
    avatar: Optional[str] = None


class RegistryEntry(User):
    password_hash: str = Field(..., description="BCrypt password hash")

    def public(self) -> User:
        return User(id=self.id, email=self.email, name=self.name, avatar=self.avatar)


class Logistics(CamelModel):
    hotel_name: str = ""
    hotel_cost: float = Field(0, ge=0)
    transport_mode: str = ""
    transport_cost: float = Field(0, ge=0)


class MealInfo(CamelModel):
    name: str = ""
    cost: float = Field(0, ge=0)
    restaurant: str = ""


class FoodLogistics(CamelModel):
    breakfast: MealInfo = Field(default_factory=MealInfo)
    lunch: MealInfo = Field(default_factory=MealInfo)
    dinner: MealInfo = Field(default_factory=MealInfo)


class Section(CamelModel):
    id: str
    paragraph_en: str
    paragraph_hi: str
    topic: str
    image: Optional[str] = Field(None, description="Image reference attached by the user")


class Day(CamelModel):
    id: str
    day_number: int = Field(..., ge=1)
    raw_transcript: str = ""
    sections: List[Section] = Field(default_factory=list)
    summary: str = ""
    logistics: Logistics = Field(default_factory=Logistics)
    food_logistics: FoodLogistics = Field(default_factory=FoodLogistics)
    is_completed: bool = False
    date: str = Field(default_factory=utc_now_iso)


class Trip(CamelModel):
    id: str
    owner_id: str
    title: str
    location: str
    cover_image: str = ""
    days: List[Day] = Field(default_factory=list)
    is_public: bool = True
    start_date: str = Field(default_factory=utc_now_iso)
    status: TripStatus = "active"
    # None on trips stored before the flags existed
    title_is_placeholder: Optional[bool] = None
    location_is_placeholder: Optional[bool] = None


# ---- Narrative generation result ----
#
# Everything is optional: None means "not supplied" and must never
# overwrite a stored value. A null sections or summary reads as empty.

class GeneratedSection(BaseModel):
    # The generator writes these keys in snake_case
    paragraph_en: str
    paragraph_hi: str
    topic: str


class LogisticsUpdate(CamelModel):
    hotel_name: Optional[str] = None
    hotel_cost: Optional[float] = None
    transport_mode: Optional[str] = None
    transport_cost: Optional[float] = None


class MealUpdate(CamelModel):
    name: Optional[str] = None
    cost: Optional[float] = None
    restaurant: Optional[str] = None


class FoodLogisticsUpdate(CamelModel):
    breakfast: Optional[MealUpdate] = None
    lunch: Optional[MealUpdate] = None
    dinner: Optional[MealUpdate] = None


class NarrativeResult(CamelModel):
    sections: List[GeneratedSection] = Field(default_factory=list)
    summary: str = ""
    logistics: Optional[LogisticsUpdate] = None
    food_logistics: Optional[FoodLogisticsUpdate] = None
    suggested_title: Optional[str] = None
    suggested_location: Optional[str] = None

    @field_validator("sections", mode="before")
    @classmethod
    def _null_sections(cls, v):
        return [] if v is None else v

    @field_validator("summary", mode="before")
    @classmethod
    def _null_summary(cls, v):
        return "" if v is None else v
