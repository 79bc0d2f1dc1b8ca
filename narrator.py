"""
Clients for the two external collaborators: transcription and narrative
generation. Both are single blocking round trips with no retry; any
failure surfaces as ServiceError and the caller keeps its prior state.
"""

import base64
import json
import re
from typing import List, Optional, Protocol

import requests
from loguru import logger
from pydantic import ValidationError as SchemaError

from errors import ServiceError
from schemas import NarrativeResult, Section
from settings import (
    GEMINI_API_KEY,
    GEMINI_API_URL,
    GEMINI_TIMEOUT_SECONDS,
    NARRATIVE_MODEL,
    TRANSCRIPTION_MODEL,
)

TRANSCRIBE_PROMPT = (
    "Transcribe this audio exactly as spoken. It may contain a mix of English and Hindi "
    "(Hinglish). Just transcribe the words as they are."
)

EDITOR_PROMPT = """
You are a professional travel editor. Convert raw Hinglish travel notes into a beautiful bilingual travel blog.

CRITICAL RULES:
1. Language: Create content in both English (paragraph_en) and Hindi (paragraph_hi).
2. Tone: Simple, clear, and evocative.
3. Hindi Formatting: For paragraph_hi, ensure standard professional Devanagari grammar. DO NOT use English spaces between Hindi letters.
4. Structure: Break the story into exactly 2 or 3 distinct sections.
5. Continuity: Do not repeat topics already covered in earlier sections of the day.
6. Logistics: Extract Hotel and Transport costs in INR. Omit any field that is not mentioned.
7. Food Logistics: Extract details for Breakfast, Lunch, and Dinner. Omit meals that are not mentioned.

Return the response in valid JSON format only.
"""

_MEAL_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "name": {"type": "STRING"},
        "cost": {"type": "NUMBER"},
        "restaurant": {"type": "STRING"},
    },
}

RESPONSE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "sections": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "paragraph_en": {"type": "STRING"},
                    "paragraph_hi": {"type": "STRING"},
                    "topic": {"type": "STRING"},
                },
                "required": ["paragraph_en", "paragraph_hi", "topic"],
            },
        },
        "summary": {"type": "STRING"},
        "suggestedTitle": {"type": "STRING"},
        "suggestedLocation": {"type": "STRING"},
        "logistics": {
            "type": "OBJECT",
            "properties": {
                "hotelName": {"type": "STRING"},
                "hotelCost": {"type": "NUMBER"},
                "transportMode": {"type": "STRING"},
                "transportCost": {"type": "NUMBER"},
            },
        },
        "foodLogistics": {
            "type": "OBJECT",
            "properties": {"breakfast": _MEAL_SCHEMA, "lunch": _MEAL_SCHEMA, "dinner": _MEAL_SCHEMA},
        },
    },
    "required": ["sections", "summary"],
}

_FENCE = re.compile(r"```(?:json)?")


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, mime_type: str) -> str: ...


class Narrator(Protocol):
    def generate(self, transcript: str, existing_sections: List[Section]) -> NarrativeResult: ...


def parse_result(text: str) -> NarrativeResult:
    """Parse the model's JSON reply, tolerating stray markdown fences."""
    cleaned = _FENCE.sub("", text or "").strip()
    try:
        data = json.loads(cleaned or "{}")
    except json.JSONDecodeError as e:
        logger.error(f"Narrative reply is not JSON: {e}")
        raise ServiceError("Editorial processor returned invalid data structure.")
    if not isinstance(data, dict) or "sections" not in data:
        raise ServiceError("Editorial processor returned invalid data structure.")
    try:
        return NarrativeResult(**data)
    except SchemaError as e:
        logger.error(f"Narrative reply failed validation: {e}")
        raise ServiceError("Editorial processor returned invalid data structure.")


def build_user_prompt(transcript: str, existing_sections: List[Section]) -> str:
    prompt = f'New Transcript: "{transcript}"'
    if existing_sections:
        topics = "; ".join(s.topic for s in existing_sections)
        prompt += f"\nTopics already written for this day: {topics}"
    return prompt


class GeminiClient:
    def __init__(
        self,
        api_key: str = GEMINI_API_KEY,
        base_url: str = GEMINI_API_URL,
        transcription_model: str = TRANSCRIPTION_MODEL,
        narrative_model: str = NARRATIVE_MODEL,
        timeout: Optional[float] = GEMINI_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.transcription_model = transcription_model
        self.narrative_model = narrative_model
        self.timeout = timeout
        self.session = session or requests.Session()

    def _generate_content(self, model: str, body: dict) -> str:
        if not self.api_key:
            raise ServiceError("API key missing")
        url = f"{self.base_url}/models/{model}:generateContent"
        try:
            r = self.session.post(url, json=body, headers={"x-goog-api-key": self.api_key}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request to {model} failed: {e}")
            raise ServiceError("Narrative service unreachable")
        if r.status_code != 200:
            logger.error(f"{model} answered {r.status_code}: {r.text[:200]}")
            raise ServiceError("Narrative service error")
        try:
            candidates = r.json().get("candidates") or []
            parts = candidates[0]["content"]["parts"] if candidates else []
        except (ValueError, KeyError, IndexError, TypeError) as e:
            logger.error(f"Unexpected reply shape from {model}: {e}")
            raise ServiceError("Narrative service returned an unexpected reply")
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        body = {
            "contents": [{
                "parts": [
                    {"inline_data": {
                        "mime_type": mime_type or "audio/webm",
                        "data": base64.b64encode(audio).decode("ascii"),
                    }},
                    {"text": TRANSCRIBE_PROMPT},
                ]
            }]
        }
        return self._generate_content(self.transcription_model, body)

    def generate(self, transcript: str, existing_sections: List[Section]) -> NarrativeResult:
        body = {
            "system_instruction": {"parts": [{"text": EDITOR_PROMPT}]},
            "contents": [{"parts": [{"text": build_user_prompt(transcript, existing_sections)}]}],
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": RESPONSE_SCHEMA,
            },
        }
        return parse_result(self._generate_content(self.narrative_model, body))
