from typing import List

import pytest
from fastapi.testclient import TestClient

from database import MemoryStore
from dictation import DictationCycle
from errors import ServiceError
from schemas import NarrativeResult, Section
import main


class FakeTranscriber:
    def __init__(self, text: str = "aaj hum Jaipur pahunche"):
        self.text = text
        self.calls = []

    def transcribe(self, audio: bytes, mime_type: str) -> str:
        self.calls.append((audio, mime_type))
        return self.text


class FakeNarrator:
    """Returns queued results in order; an exception in the queue is raised."""

    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def generate(self, transcript: str, existing_sections: List[Section]) -> NarrativeResult:
        self.calls.append((transcript, list(existing_sections)))
        if not self.results:
            raise ServiceError("no result queued")
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def make_result(*topics, **extra) -> NarrativeResult:
    sections = [
        {"paragraph_en": f"About {t}.", "paragraph_hi": f"{t} के बारे में।", "topic": t}
        for t in topics
    ]
    return NarrativeResult(sections=sections, **extra)


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def narrator():
    return FakeNarrator()


@pytest.fixture
def cycle(store, transcriber, narrator):
    return DictationCycle(store, transcriber=transcriber, narrator=narrator)


@pytest.fixture
def client(store, cycle):
    main.app.dependency_overrides[main.get_store] = lambda: store
    main.app.dependency_overrides[main.get_cycle] = lambda: cycle
    with TestClient(main.app) as c:
        yield c
    main.app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(client):
    r = client.post("/auth/signup", json={"email": "rahul@gmail.com", "password": "secret1", "name": "Rahul"})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['access_token']}"}
