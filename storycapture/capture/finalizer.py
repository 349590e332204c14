"""
SegmentFinalizer: per-segment pipeline run after a capture window closes.

upload -> diarize -> compile -> classify -> record turns -> persist -> notify

Runs as its own task, concurrently with the recording of the next segment.
Upload and transcription of different segments overlap freely; classify and
record run in segment order, so the session-wide role mapping always comes
from the lowest-numbered segment with speakers, whatever the provider latency.
Failures stay inside the segment: it is marked failed, contributes zero turns,
and sibling segments and session counters are untouched.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.diarization.base import DiarizationProvider
from storycapture.diarization.compiler import compile_utterances
from storycapture.errors import SegmentProcessingError, SessionNotActive
from storycapture.roles.classifier import RoleClassifier
from storycapture.session.models import Segment, SegmentStatus, Turn
from storycapture.session.tracker import SessionStateTracker
from storycapture.storage.segment_store import NoOpSegmentStore, SegmentStore
from storycapture.storage.uploader import NoOpUploader, Uploader, segment_audio_path

logger = logging.getLogger(__name__)

SegmentReadyHandler = Callable[[int, Segment], None]


class SegmentFinalizer:
    """One per session: holds the session's classifier so role mapping stays session-wide."""

    def __init__(
        self,
        session_id: str,
        provider: DiarizationProvider,
        classifier: RoleClassifier,
        tracker: SessionStateTracker,
        uploader: Optional[Uploader] = None,
        store: Optional[SegmentStore] = None,
        on_segment_ready: Optional[SegmentReadyHandler] = None,
    ) -> None:
        self._session_id = session_id
        self._provider = provider
        self._classifier = classifier
        self._tracker = tracker
        self._uploader = uploader or NoOpUploader()
        self._store = store or NoOpSegmentStore()
        self._on_segment_ready = on_segment_ready
        self._classified: dict[int, asyncio.Event] = {}

    def _classified_event(self, segment_number: int) -> asyncio.Event:
        event = self._classified.get(segment_number)
        if event is None:
            event = self._classified[segment_number] = asyncio.Event()
        return event

    async def finalize(self, segment: Segment, buffer: RawAudioBuffer) -> Segment:
        """Process one closed segment. Never raises for segment-level failures."""
        number = segment.segment_number
        if buffer.is_silent():
            logger.debug("Segment %d is near-silent (rms %.1f)", number, buffer.rms())
        try:
            segment.audio_url = await self._uploader.upload(
                buffer, segment_audio_path(self._session_id, number)
            )
            tokens = await self._provider.transcribe(buffer)
            utterances = compile_utterances(tokens)
            if number > 1:
                await self._classified_event(number - 1).wait()
            roles = self._classifier.classify(utterances)
            turns = [
                Turn.from_utterance(u, role, number, segment.started_at_ms)
                for u, role in zip(utterances, roles)
            ]
            for turn in turns:
                self._tracker.record_turn(turn)
            segment.turns = turns
            segment.status = SegmentStatus.PROCESSED
            logger.info("Segment %d processed: %d turns", number, len(turns))
        except (SegmentProcessingError, SessionNotActive) as e:
            segment.status = SegmentStatus.FAILED
            segment.error = str(e)
            logger.warning("Segment %d failed: %s", number, e)
        except Exception as e:
            segment.status = SegmentStatus.FAILED
            segment.error = str(e) or type(e).__name__
            logger.exception("Segment %d failed unexpectedly", number)
        finally:
            # Next segment classifies only after this one; set on every exit path.
            self._classified_event(number).set()

        self._persist(segment)
        self._notify(segment)
        return segment

    def _persist(self, segment: Segment) -> None:
        try:
            self._store.save_segment(self._session_id, segment)
            self._store.save_turns(self._session_id, segment.turns)
        except Exception as e:
            logger.warning("Persisting segment %d failed: %s", segment.segment_number, e)

    def _notify(self, segment: Segment) -> None:
        if self._on_segment_ready is None:
            return
        try:
            self._on_segment_ready(segment.segment_number, segment)
        except Exception:
            logger.exception("on_segment_ready handler failed for segment %d", segment.segment_number)
