"""
One recording/processing cycle: audio -> transcript -> narrative -> merge.

Only one cycle may run per trip at a time, so merges land in the order
their recordings were submitted. The in-flight marker is released however
the cycle ends.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional, Set

from loguru import logger

from database import KeyValueStore
from errors import Busy, DeviceError, ServiceError
from journal import apply_dictation, get_day
from narrator import Narrator, Transcriber
from schemas import Trip
from trips import get_trip, put_trip


@dataclass
class CycleOutcome:
    trip: Trip
    transcript: str
    skipped: bool = False


class DictationCycle:
    def __init__(self, store: KeyValueStore, transcriber: Transcriber, narrator: Narrator):
        self.store = store
        self.transcriber = transcriber
        self.narrator = narrator
        self._active: Set[str] = set()
        self._lock = threading.Lock()

    @contextmanager
    def _claim(self, trip_id: str):
        with self._lock:
            if trip_id in self._active:
                raise Busy("A recording is already being processed for this trip.")
            self._active.add(trip_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(trip_id)

    def is_busy(self, trip_id: str) -> bool:
        with self._lock:
            return trip_id in self._active

    def process_audio(
        self,
        owner_id: str,
        trip_id: str,
        day_number: int,
        audio: Optional[bytes],
        mime_type: str = "audio/webm",
    ) -> CycleOutcome:
        if not audio:
            raise DeviceError("No audio was captured.")
        with self._claim(trip_id):
            trip = get_trip(self.store, owner_id, trip_id)
            get_day(trip, day_number)
            transcript = self._transcribe(audio, mime_type)
            return self._narrate(trip, day_number, transcript)

    def process_text(self, owner_id: str, trip_id: str, day_number: int, transcript: str) -> CycleOutcome:
        with self._claim(trip_id):
            trip = get_trip(self.store, owner_id, trip_id)
            get_day(trip, day_number)
            return self._narrate(trip, day_number, transcript)

    def _transcribe(self, audio: bytes, mime_type: str) -> str:
        try:
            return (self.transcriber.transcribe(audio, mime_type) or "").strip()
        except ServiceError:
            raise
        except Exception as e:
            logger.exception("Transcription failed")
            raise ServiceError(f"Transcription failed: {e}")

    def _narrate(self, trip: Trip, day_number: int, transcript: str) -> CycleOutcome:
        transcript = (transcript or "").strip()
        if not transcript:
            logger.info(f"Empty dictation for {trip.id} day {day_number}, nothing to merge")
            return CycleOutcome(trip=trip, transcript="", skipped=True)

        day = get_day(trip, day_number)
        try:
            result = self.narrator.generate(transcript, day.sections)
        except ServiceError:
            raise
        except Exception as e:
            logger.exception("Narrative generation failed")
            raise ServiceError(f"Narrative generation failed: {e}")

        updated = apply_dictation(trip, day_number, transcript, result)
        put_trip(self.store, updated)
        logger.info(f"Merged dictation into {trip.id} day {day_number}: +{len(result.sections)} sections")
        return CycleOutcome(trip=updated, transcript=transcript)
