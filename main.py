import logging
import sys
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Depends, UploadFile, File, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from loguru import logger
from pydantic import BaseModel

import auth
import journal
from database import KeyValueStore, db, get_json, set_json, lang_key
from dictation import DictationCycle
from errors import TravelLogError
from narrator import GeminiClient
from schemas import CamelModel, Language, LogisticsUpdate, MealUpdate, Trip, TripStatus, User
from settings import LOG_LEVEL
from trips import get_trip, insert_trip, load_trips, put_trip


# Logging: route uvicorn's standard logging through loguru
class InterceptHandler(logging.Handler):
    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


logger.remove()
logger.add(
    sys.stderr,
    level=LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
)
for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    mod_logger = logging.getLogger(logger_name)
    mod_logger.handlers = [InterceptHandler()]
    mod_logger.propagate = False


app = FastAPI(title="TravelLog")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

security = HTTPBearer()

_cycle: Optional[DictationCycle] = None


def request_language(request: Request) -> Language:
    """Saved preference of the signed-in user, else the request's own hint."""
    lang = getattr(request.state, "lang", None)
    if lang in ("en", "hi"):
        return lang
    accept = request.headers.get("accept-language", "")
    return "hi" if accept.lower().startswith("hi") else "en"


@app.exception_handler(TravelLogError)
async def travellog_error_handler(request: Request, exc: TravelLogError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.localized(request_language(request)), "error": type(exc).__name__},
    )


# Dependencies
def get_store() -> KeyValueStore:
    return db


def get_cycle(store: KeyValueStore = Depends(get_store)) -> DictationCycle:
    global _cycle
    if _cycle is None or _cycle.store is not store:
        client = GeminiClient()
        _cycle = DictationCycle(store, transcriber=client, narrator=client)
    return _cycle


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(security),
    store: KeyValueStore = Depends(get_store),
) -> User:
    try:
        data = auth.decode_token(creds.credentials)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")
    user_id = data.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")
    user = auth.resolve_session(store, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Session expired")
    request.state.lang = get_json(store, lang_key(user.id), "en")
    return user


def get_language(request: Request, user: User = Depends(get_current_user)) -> Language:
    return request.state.lang


# Request/Response Models
class SignupRequest(BaseModel):
    email: str
    password: str
    name: Optional[str] = None
    lang: Optional[Language] = None


class LoginRequest(BaseModel):
    email: str
    password: str
    lang: Optional[Language] = None


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: User


class LanguageRequest(CamelModel):
    lang: Language


class TripDetailsRequest(CamelModel):
    title: Optional[str] = None
    location: Optional[str] = None
    is_public: Optional[bool] = None
    status: Optional[TripStatus] = None


class ImageRequest(CamelModel):
    image: str


class NarrationRequest(CamelModel):
    transcript: str


class DictationResponse(CamelModel):
    skipped: bool
    transcript: str
    trip: Trip


class TotalsResponse(CamelModel):
    day_number: int
    day_total: float
    trip_total: float


@app.get("/")
def root():
    return {"app": "TravelLog", "status": "ok"}


# Auth endpoints
@app.post("/auth/signup", response_model=AuthResponse)
def signup(payload: SignupRequest, request: Request, store: KeyValueStore = Depends(get_store)):
    if payload.lang:
        request.state.lang = payload.lang
    user = auth.signup(store, payload.email, payload.password, payload.name)
    return AuthResponse(access_token=auth.start_session(store, user), user=user)


@app.post("/auth/login", response_model=AuthResponse)
def login(payload: LoginRequest, request: Request, store: KeyValueStore = Depends(get_store)):
    if payload.lang:
        request.state.lang = payload.lang
    user = auth.login(store, payload.email, payload.password)
    return AuthResponse(access_token=auth.start_session(store, user), user=user)


@app.get("/auth/me", response_model=User)
def me(user: User = Depends(get_current_user)):
    return user


@app.post("/auth/logout")
def logout(user: User = Depends(get_current_user), store: KeyValueStore = Depends(get_store)):
    auth.end_session(store, user.id)
    return {"status": "logged_out"}


# Preferences
@app.get("/preferences/language")
def get_language_preference(lang: Language = Depends(get_language)):
    return {"lang": lang}


@app.put("/preferences/language")
def set_language_preference(
    payload: LanguageRequest,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    set_json(store, lang_key(user.id), payload.lang)
    return {"lang": payload.lang}


# Trip endpoints
@app.post("/trips", response_model=Trip)
def create_trip(
    user: User = Depends(get_current_user),
    lang: Language = Depends(get_language),
    store: KeyValueStore = Depends(get_store),
):
    trip = insert_trip(store, journal.new_trip(user.id, lang))
    logger.info(f"New trip {trip.id} for {user.id}")
    return trip


@app.get("/trips", response_model=List[Trip])
def list_trips(
    public_only: bool = False,
    q: str = "",
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    return journal.filter_trips(load_trips(store, user.id), public_only=public_only, query=q)


@app.get("/trips/{trip_id}", response_model=Trip)
def read_trip(trip_id: str, user: User = Depends(get_current_user), store: KeyValueStore = Depends(get_store)):
    return get_trip(store, user.id, trip_id)


@app.patch("/trips/{trip_id}", response_model=Trip)
def update_trip(
    trip_id: str,
    payload: TripDetailsRequest,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.update_trip_details(
        trip,
        title=payload.title,
        location=payload.location,
        is_public=payload.is_public,
        status=payload.status,
    ))


@app.put("/trips/{trip_id}/cover", response_model=Trip)
def update_cover(
    trip_id: str,
    payload: ImageRequest,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.set_cover_image(trip, payload.image))


# Day endpoints
@app.post("/trips/{trip_id}/days", response_model=Trip)
def create_day(
    trip_id: str,
    user: User = Depends(get_current_user),
    lang: Language = Depends(get_language),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.add_day(trip, lang))


@app.patch("/trips/{trip_id}/days/{day_number}/logistics", response_model=Trip)
def update_logistics(
    trip_id: str,
    day_number: int,
    payload: LogisticsUpdate,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.update_logistics(trip, day_number, payload))


@app.patch("/trips/{trip_id}/days/{day_number}/meals/{meal}", response_model=Trip)
def update_meal(
    trip_id: str,
    day_number: int,
    meal: str,
    payload: MealUpdate,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.update_meal(trip, day_number, meal, payload))


@app.post("/trips/{trip_id}/days/{day_number}/complete", response_model=Trip)
def complete_day(
    trip_id: str,
    day_number: int,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.complete_day(trip, day_number))


@app.put("/trips/{trip_id}/days/{day_number}/sections/{section_id}/image", response_model=Trip)
def attach_image(
    trip_id: str,
    day_number: int,
    section_id: str,
    payload: ImageRequest,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    return put_trip(store, journal.attach_section_image(trip, day_number, section_id, payload.image))


@app.get("/trips/{trip_id}/days/{day_number}/totals", response_model=TotalsResponse)
def day_totals(
    trip_id: str,
    day_number: int,
    user: User = Depends(get_current_user),
    store: KeyValueStore = Depends(get_store),
):
    trip = get_trip(store, user.id, trip_id)
    day = journal.get_day(trip, day_number)
    return TotalsResponse(day_number=day_number, day_total=journal.daily_total(day), trip_total=journal.trip_total(trip))


# Dictation
@app.post("/trips/{trip_id}/days/{day_number}/dictation", response_model=DictationResponse)
def dictate(
    trip_id: str,
    day_number: int,
    file: UploadFile = File(...),
    user: User = Depends(get_current_user),
    cycle: DictationCycle = Depends(get_cycle),
):
    audio = file.file.read()
    outcome = cycle.process_audio(user.id, trip_id, day_number, audio, file.content_type or "audio/webm")
    return DictationResponse(skipped=outcome.skipped, transcript=outcome.transcript, trip=outcome.trip)


@app.post("/trips/{trip_id}/days/{day_number}/narration", response_model=DictationResponse)
def narrate(
    trip_id: str,
    day_number: int,
    payload: NarrationRequest,
    user: User = Depends(get_current_user),
    cycle: DictationCycle = Depends(get_cycle),
):
    outcome = cycle.process_text(user.id, trip_id, day_number, payload.transcript)
    return DictationResponse(skipped=outcome.skipped, transcript=outcome.transcript, trip=outcome.trip)


if __name__ == "__main__":
    import uvicorn
    from settings import PORT
    uvicorn.run(app, host="0.0.0.0", port=PORT)
