import random
import string
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import quote

import jwt
from loguru import logger
from passlib.context import CryptContext

from database import KeyValueStore, REGISTRY_KEY, get_json, set_json, session_key
from errors import AlreadyExists, InvalidCredential, NotFound, ValidationError
from schemas import RegistryEntry, User
from settings import ALLOWED_EMAIL_DOMAIN, JWT_ALG, JWT_SECRET, MIN_SECRET_LENGTH, TOKEN_TTL_MINUTES

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

AVATAR_URL = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"


# Helpers
def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def generate_user_id(length: int = 9) -> str:
    return "user-" + "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def validate_credentials(email: str, password: str) -> str:
    """Check email format and password policy; return the normalized email.

    Runs before any registry access so a rejected request never touches
    the store.
    """
    email_clean = normalize_email(email)
    local = email_clean[: -len(ALLOWED_EMAIL_DOMAIN)] if email_clean.endswith(ALLOWED_EMAIL_DOMAIN) else ""
    if not local or "@" in local or any(c.isspace() for c in local):
        raise ValidationError(
            f"Please use a valid {ALLOWED_EMAIL_DOMAIN} address.",
            f"कृपया एक मान्य {ALLOWED_EMAIL_DOMAIN} पते का उपयोग करें।",
        )
    if len(password or "") < MIN_SECRET_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_SECRET_LENGTH} characters.",
            f"पासवर्ड कम से कम {MIN_SECRET_LENGTH} अक्षरों का होना चाहिए।",
        )
    return email_clean


# Registry
def load_registry(store: KeyValueStore) -> List[RegistryEntry]:
    return [RegistryEntry(**item) for item in get_json(store, REGISTRY_KEY, [])]


def find_entry(store: KeyValueStore, email: str) -> Optional[RegistryEntry]:
    email_clean = normalize_email(email)
    for entry in load_registry(store):
        if entry.email == email_clean:
            return entry
    return None


def find_entry_by_id(store: KeyValueStore, user_id: str) -> Optional[RegistryEntry]:
    for entry in load_registry(store):
        if entry.id == user_id:
            return entry
    return None


def login(store: KeyValueStore, email: str, password: str) -> User:
    email_clean = validate_credentials(email, password)
    entry = find_entry(store, email_clean)
    if entry is None:
        logger.info(f"Login failed, no account: {email_clean}")
        raise NotFound("Account not found. Please sign up first.", "खाता नहीं मिला। कृपया पहले साइन अप करें।")
    if not verify_password(password, entry.password_hash):
        logger.info(f"Login failed, wrong password: {email_clean}")
        raise InvalidCredential("Incorrect password. Please try again.", "गलत पासवर्ड। कृपया पुनः प्रयास करें।")
    logger.info(f"Login: {email_clean}")
    return entry.public()


def signup(store: KeyValueStore, email: str, password: str, name: Optional[str] = None) -> User:
    email_clean = validate_credentials(email, password)
    registry = load_registry(store)
    if any(entry.email == email_clean for entry in registry):
        raise AlreadyExists("An account with this email already exists.", "इस ईमेल वाला खाता पहले से मौजूद है।")
    entry = RegistryEntry(
        id=generate_user_id(),
        email=email_clean,
        name=(name or "").strip() or email_clean.split("@")[0],
        avatar=AVATAR_URL.format(seed=quote(email_clean, safe="")),
        password_hash=hash_password(password),
    )
    registry.append(entry)
    set_json(store, REGISTRY_KEY, [e.model_dump(by_alias=True) for e in registry])
    logger.info(f"Signup: {email_clean} ({entry.id})")
    return entry.public()


# Sessions
def start_session(store: KeyValueStore, user: User) -> str:
    set_json(store, session_key(user.id), user.model_dump(by_alias=True))
    return create_token({"user_id": user.id, "email": user.email, "name": user.name})


def end_session(store: KeyValueStore, user_id: str) -> None:
    store.delete(session_key(user_id))


def create_token(payload: dict, expires_minutes: int = TOKEN_TTL_MINUTES) -> str:
    to_encode = payload.copy()
    to_encode["exp"] = datetime.utcnow() + timedelta(minutes=expires_minutes)
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALG)


def decode_token(token: str) -> dict:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])


def resolve_session(store: KeyValueStore, user_id: str) -> Optional[User]:
    """Return the session's user if it is still open and still registered."""
    saved = get_json(store, session_key(user_id))
    if saved is None:
        return None
    entry = find_entry_by_id(store, user_id)
    if entry is None:
        end_session(store, user_id)
        return None
    return entry.public()
