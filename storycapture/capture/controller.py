"""
SegmentCaptureController: owns the capture device for one session and rotates
it into fixed-length, non-overlapping segments.

Session:  idle -> active -> ending -> ended
Segment:  recording -> finalizing -> processed | failed

Concurrency layout (all on one event loop):
- actor task: the only writer of controller state. Consumes commands
  (rotate / timeout / stop) from a queue, so device stop/start is serialized.
- rotation timer: one per segment; sleeps one window, then enqueues rotate.
- session timer: sleeps max_session_ms, then enqueues timeout.
- finalize tasks: one per closed segment, bounded by a semaphore. They only
  talk to the session through the tracker, never through controller state.

Timers only enqueue commands, so cancelling them can never interrupt a
device handoff. A rotate for a segment that is no longer current, or any
rotate after the liveness flag was cleared, is ignored.
"""
from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.audio.device import CaptureDevice, CaptureHandle
from storycapture.capture.finalizer import SegmentFinalizer, SegmentReadyHandler
from storycapture.config import get_settings
from storycapture.diarization.base import DiarizationProvider
from storycapture.errors import (
    CaptureInterrupted,
    DeviceUnavailable,
    SessionAlreadyActive,
    SessionNotActive,
)
from storycapture.roles.classifier import RoleClassifier, create_role_classifier
from storycapture.session.models import (
    EndReason,
    Segment,
    SegmentStatus,
    SessionSnapshot,
    SessionState,
    SessionStats,
)
from storycapture.session.tracker import SessionStateTracker
from storycapture.storage.segment_store import NoOpSegmentStore, SegmentStore
from storycapture.storage.uploader import NoOpUploader, Uploader

logger = logging.getLogger(__name__)

SessionCompleteHandler = Callable[[SessionSnapshot], None]


class _Command(Enum):
    ROTATE = "rotate"
    TIMEOUT = "timeout"
    STOP = "stop"


class SegmentCaptureController:
    """
    One controller per capture device. start_session() / stop_session() may be
    repeated; each session gets a fresh tracker, classifier and finalizer.
    """

    def __init__(
        self,
        device: CaptureDevice,
        provider: DiarizationProvider,
        uploader: Optional[Uploader] = None,
        store: Optional[SegmentStore] = None,
        on_segment_ready: Optional[SegmentReadyHandler] = None,
        on_session_complete: Optional[SessionCompleteHandler] = None,
        segment_window_ms: int | None = None,
        max_segments: int | None = None,
        max_session_ms: int | None = None,
        finalize_concurrency: int | None = None,
        finalize_timeout_sec: float | None = None,
        classifier_factory: Callable[[bool], RoleClassifier] = create_role_classifier,
    ) -> None:
        settings = get_settings()
        self._device = device
        self._provider = provider
        self._uploader = uploader or NoOpUploader()
        self._store = store or NoOpSegmentStore()
        self._on_segment_ready = on_segment_ready
        self._on_session_complete = on_session_complete
        self._classifier_factory = classifier_factory

        self._segment_window_ms = segment_window_ms or settings.SEGMENT_WINDOW_MS
        self._max_segments = max_segments or settings.MAX_SEGMENTS
        self._max_session_ms = max_session_ms or settings.MAX_SESSION_MS
        self._finalize_concurrency = (
            finalize_concurrency or settings.FINALIZE_CONCURRENCY or self._max_segments
        )
        self._finalize_timeout_sec = (
            finalize_timeout_sec if finalize_timeout_sec is not None else settings.FINALIZE_TIMEOUT_SEC
        )

        self._state = SessionState.IDLE
        self._tracker: Optional[SessionStateTracker] = None
        self._finalizer: Optional[SegmentFinalizer] = None
        self._handle: Optional[CaptureHandle] = None
        self._live = False
        self._segments: list[Segment] = []
        self._current: Optional[Segment] = None
        self._segment_opened_at = 0.0  # loop time
        self._segment_nominal_start = 0.0  # loop time the rotation timer counts from
        self._captured_ms = 0.0

        self._commands: asyncio.Queue[tuple[_Command, Any]] = asyncio.Queue()
        self._actor_task: Optional[asyncio.Task] = None
        self._rotation_timer: Optional[asyncio.Task] = None
        self._session_timer: Optional[asyncio.Task] = None
        self._finalize_tasks: set[asyncio.Task] = set()
        self._semaphore: Optional[asyncio.Semaphore] = None
        self._closed: Optional[asyncio.Event] = None

        self._snapshot: Optional[SessionSnapshot] = None
        self._end_reason: Optional[EndReason] = None
        self._error: Optional[CaptureInterrupted] = None

    # --- queries ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def session_id(self) -> Optional[str]:
        return self._tracker.session_id if self._tracker else None

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    @property
    def end_reason(self) -> Optional[EndReason]:
        return self._end_reason

    @property
    def snapshot(self) -> Optional[SessionSnapshot]:
        return self._snapshot

    @property
    def captured_ms(self) -> float:
        return self._captured_ms

    def is_recording(self) -> bool:
        return (
            self._state == SessionState.ACTIVE
            and self._live
            and self._current is not None
            and self._current.status == SegmentStatus.RECORDING
        )

    def current_segment_number(self) -> int:
        if self._current is not None:
            return self._current.segment_number
        return self._segments[-1].segment_number if self._segments else 0

    def stats(self) -> SessionStats:
        if self._tracker is None:
            return SessionStats()
        return self._tracker.stats()

    # --- commands ---

    async def start_session(self) -> str:
        """Acquire the device and begin recording segment 1. Returns the session id."""
        if self._state in (SessionState.ACTIVE, SessionState.ENDING):
            raise SessionAlreadyActive(f"Session {self.session_id} is {self._state.value}")

        handle = await self._device.open()
        try:
            await handle.start()
        except CaptureInterrupted as e:
            await self._close_handle(handle)
            raise DeviceUnavailable(f"Capture device failed to start: {e}") from e

        self._reset()
        self._handle = handle
        self._tracker = SessionStateTracker()
        session_id = self._tracker.start()
        self._finalizer = SegmentFinalizer(
            session_id=session_id,
            provider=self._provider,
            classifier=self._classifier_factory(self._provider.diarizes),
            tracker=self._tracker,
            uploader=self._uploader,
            store=self._store,
            on_segment_ready=self._on_segment_ready,
        )
        await self._store.start(session_id)

        loop = asyncio.get_running_loop()
        self._state = SessionState.ACTIVE
        self._live = True
        self._open_segment(1, nominal_start=loop.time())
        self._actor_task = asyncio.create_task(self._run())
        self._session_timer = asyncio.create_task(self._session_timeout())
        logger.info(
            "Session %s capturing: window %dms, max %d segments, max %dms",
            session_id,
            self._segment_window_ms,
            self._max_segments,
            self._max_session_ms,
        )
        return session_id

    def rotate_segment(self) -> None:
        """Force the current segment to close now and the next one to start."""
        if self._state != SessionState.ACTIVE or not self._live or self._current is None:
            raise SessionNotActive("No segment is recording")
        self._commands.put_nowait((_Command.ROTATE, self._current.segment_number))

    async def stop_session(self) -> SessionSnapshot:
        """
        User-initiated stop. Clears the liveness flag before anything else so no
        new segment can start, cancels both timers, finalizes the in-flight
        (possibly short) segment and waits for every finalize task.
        """
        if self._state in (SessionState.IDLE, SessionState.ENDED):
            raise SessionNotActive(f"Cannot stop: session is {self._state.value}")
        if self._live:
            self._live = False
            self._cancel_timers()
            self._commands.put_nowait((_Command.STOP, None))
        return await self.wait_closed()

    async def wait_closed(self) -> SessionSnapshot:
        """Wait until the session has ended (by stop or by a cap) and return its snapshot."""
        if self._closed is None:
            raise SessionNotActive("No session was started")
        await self._closed.wait()
        if self._error is not None:
            raise self._error
        return self._snapshot

    # --- actor ---

    async def _run(self) -> None:
        reason = EndReason.USER_STOP
        try:
            while True:
                command, arg = await self._commands.get()
                if command is _Command.ROTATE:
                    if not self._live or self._current is None or arg != self._current.segment_number:
                        logger.debug("Ignoring stale rotate for segment %s", arg)
                        continue
                    cap = await self._rotate(timer_fired=self._rotation_due())
                    if cap is None:
                        continue
                    reason = cap
                elif command is _Command.TIMEOUT:
                    if not self._live:
                        continue
                    logger.info("Session max duration reached (%dms)", self._max_session_ms)
                    reason = EndReason.SESSION_TIMEOUT
                else:
                    reason = EndReason.USER_STOP
                break
        except CaptureInterrupted as e:
            logger.error("Capture interrupted: %s", e)
            self._error = e
            reason = EndReason.CAPTURE_INTERRUPTED
        except Exception as e:
            logger.exception("Capture loop failed")
            self._error = CaptureInterrupted(str(e) or type(e).__name__)
            reason = EndReason.CAPTURE_INTERRUPTED
        await self._shutdown(reason)

    async def _rotate(self, timer_fired: bool) -> Optional[EndReason]:
        """
        Close the current segment and hand it off; start the next one unless a
        cap is reached. Returns the end reason when the session must stop.
        """
        segment = self._current
        buffer = await self._handle.stop()
        self._close_segment(segment, buffer)

        if not self._live:
            return EndReason.USER_STOP
        if segment.segment_number >= self._max_segments:
            logger.info("Max segments reached (%d)", self._max_segments)
            return EndReason.MAX_SEGMENTS_REACHED
        if self._captured_ms >= self._max_session_ms:
            logger.info("Max session duration reached (%.0fms captured)", self._captured_ms)
            return EndReason.SESSION_TIMEOUT

        await self._handle.start()
        # stop_session may have landed while the handle was restarting.
        if not self._live:
            return EndReason.USER_STOP
        loop = asyncio.get_running_loop()
        if timer_fired:
            nominal_start = self._segment_nominal_start + self._segment_window_ms / 1000.0
        else:
            nominal_start = loop.time()
        self._open_segment(segment.segment_number + 1, nominal_start=nominal_start)
        return None

    def _rotation_due(self) -> bool:
        loop = asyncio.get_running_loop()
        return loop.time() >= self._segment_nominal_start + self._segment_window_ms / 1000.0

    def _open_segment(self, number: int, nominal_start: float) -> None:
        segment = Segment(segment_number=number, started_at_ms=self._captured_ms)
        self._segments.append(segment)
        self._current = segment
        self._segment_opened_at = asyncio.get_running_loop().time()
        self._segment_nominal_start = nominal_start
        if self._rotation_timer is not None:
            self._rotation_timer.cancel()
        self._rotation_timer = asyncio.create_task(self._rotation_timeout(number, nominal_start))
        logger.info("Recording segment %d", number)

    def _close_segment(self, segment: Segment, buffer: RawAudioBuffer) -> None:
        """Mark segment finalizing and spawn its finalize task. Does not wait for it."""
        elapsed_ms = (asyncio.get_running_loop().time() - self._segment_opened_at) * 1000.0
        segment.duration_ms = elapsed_ms
        segment.status = SegmentStatus.FINALIZING
        self._captured_ms += elapsed_ms
        self._current = None
        logger.info(
            "Segment %d closed after %.1fs (%d bytes)",
            segment.segment_number,
            elapsed_ms / 1000.0,
            len(buffer.pcm),
        )
        task = asyncio.create_task(self._finalize(segment, buffer))
        self._finalize_tasks.add(task)
        task.add_done_callback(self._finalize_tasks.discard)

    async def _finalize(self, segment: Segment, buffer: RawAudioBuffer) -> None:
        try:
            async with self._semaphore:
                await self._finalizer.finalize(segment, buffer)
        except asyncio.CancelledError:
            segment.status = SegmentStatus.FAILED
            segment.error = "finalize cancelled"
            raise

    async def _shutdown(self, reason: EndReason) -> None:
        self._live = False
        self._state = SessionState.ENDING
        self._cancel_timers()

        segment = self._current
        if segment is not None and segment.status == SegmentStatus.RECORDING:
            try:
                buffer = await self._handle.stop()
                self._close_segment(segment, buffer)
            except CaptureInterrupted as e:
                logger.error("Could not stop capture for segment %d: %s", segment.segment_number, e)
                segment.status = SegmentStatus.FAILED
                segment.error = str(e)
                self._current = None
                if self._error is None:
                    self._error = e
                reason = EndReason.CAPTURE_INTERRUPTED
        await self._close_handle(self._handle)
        self._handle = None

        await self._drain_finalize_tasks()
        self._tracker.mark_ending()
        self._snapshot = self._tracker.end(reason)
        self._end_reason = reason
        await self._store.close()
        self._state = SessionState.ENDED
        logger.info(
            "Session %s ended (%s): %d segments, %.1fs captured",
            self._snapshot.session_id,
            reason.value,
            len(self._segments),
            self._captured_ms / 1000.0,
        )
        self._closed.set()
        if self._on_session_complete is not None:
            try:
                self._on_session_complete(self._snapshot)
            except Exception:
                logger.exception("on_session_complete handler failed")

    async def _drain_finalize_tasks(self) -> None:
        """Let in-flight finalize tasks run to completion; cancel stragglers after the timeout."""
        tasks = list(self._finalize_tasks)
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=self._finalize_timeout_sec)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d finalize tasks after %.0fs", len(pending), self._finalize_timeout_sec)
            await asyncio.gather(*pending, return_exceptions=True)

    # --- timers ---

    async def _rotation_timeout(self, segment_number: int, nominal_start: float) -> None:
        loop = asyncio.get_running_loop()
        delay = nominal_start + self._segment_window_ms / 1000.0 - loop.time()
        await asyncio.sleep(max(0.0, delay))
        self._commands.put_nowait((_Command.ROTATE, segment_number))

    async def _session_timeout(self) -> None:
        await asyncio.sleep(self._max_session_ms / 1000.0)
        self._commands.put_nowait((_Command.TIMEOUT, None))

    def _cancel_timers(self) -> None:
        for timer in (self._rotation_timer, self._session_timer):
            if timer is not None and not timer.done():
                timer.cancel()
        self._rotation_timer = None
        self._session_timer = None

    # --- helpers ---

    def _reset(self) -> None:
        self._segments = []
        self._current = None
        self._captured_ms = 0.0
        self._commands = asyncio.Queue()
        self._finalize_tasks = set()
        self._semaphore = asyncio.Semaphore(self._finalize_concurrency)
        self._closed = asyncio.Event()
        self._snapshot = None
        self._end_reason = None
        self._error = None

    async def _close_handle(self, handle: Optional[CaptureHandle]) -> None:
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.warning("Capture device close failed: %s", e)
