"""
WebSocketManager: binds one WebSocket to one capture device and controller.

Client -> server:
- binary: raw PCM 16-bit mono 16kHz, fed into the capture device.
- text JSON: {"action": "start" | "stop" | "rotate"}.

Server -> client (JSON text):
- {"type": "session", "session_id": ...} when capture starts
- {"type": "segment", "session_id", "segment": {...}, "stats": {...}} per finalized segment
- {"type": "complete", "session": {...}} when the session ends (stop or cap)
- {"type": "error", "code": ..., "detail": ...}

Controller callbacks only enqueue events; a sender task owns the socket writes,
so a slow client never stalls a finalize task.
"""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

from fastapi import WebSocket

from storycapture.audio.stream_device import PcmStreamDevice
from storycapture.capture.controller import SegmentCaptureController
from storycapture.diarization.base import DiarizationProvider
from storycapture.errors import StoryCaptureError
from storycapture.schemas.session import SegmentOut, SessionOut, StatsOut
from storycapture.session.models import Segment, SessionSnapshot, SessionState
from storycapture.session.registry import SessionRegistry
from storycapture.storage.segment_store import SegmentStore, create_segment_store
from storycapture.storage.uploader import Uploader, create_uploader

logger = logging.getLogger(__name__)


def _error_code(err: Exception) -> str:
    """DeviceUnavailable -> device_unavailable."""
    name = type(err).__name__
    return "".join("_" + c.lower() if c.isupper() else c for c in name).lstrip("_")


class WebSocketManager:
    """
    One WebSocket = one capture device. Sessions may be started and stopped
    repeatedly on the same connection; disconnect stops a running session.
    """

    def __init__(
        self,
        websocket: WebSocket,
        provider: DiarizationProvider,
        registry: SessionRegistry,
        uploader: Optional[Uploader] = None,
        store: Optional[SegmentStore] = None,
    ) -> None:
        self._ws = websocket
        self._registry = registry
        self._device = PcmStreamDevice()
        self._controller = SegmentCaptureController(
            device=self._device,
            provider=provider,
            uploader=uploader or create_uploader(),
            store=store or create_segment_store(),
            on_segment_ready=self._on_segment_ready,
            on_session_complete=self._on_session_complete,
        )
        self._events: asyncio.Queue[Optional[dict[str, Any]]] = asyncio.Queue()
        self._sender_task: asyncio.Task[Any] | None = None
        self._closed = False

    @property
    def controller(self) -> SegmentCaptureController:
        return self._controller

    # --- controller callbacks (run on the event loop, must not block) ---

    def _on_segment_ready(self, segment_number: int, segment: Segment) -> None:
        self._events.put_nowait(
            {
                "type": "segment",
                "session_id": self._controller.session_id,
                "segment": SegmentOut.from_segment(segment).model_dump(),
                "stats": StatsOut.from_stats(self._controller.stats()).model_dump(),
            }
        )

    def _on_session_complete(self, snapshot: SessionSnapshot) -> None:
        segments = self._controller.segments
        self._registry.complete(snapshot, segments)
        session = SessionOut.from_snapshot(snapshot, segments)
        self._events.put_nowait({"type": "complete", "session": session.model_dump()})

    # --- outbound ---

    async def _sender(self) -> None:
        while True:
            event = await self._events.get()
            if event is None:
                break
            await self._send_message(event)

    async def _send_message(self, payload: dict[str, Any]) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(json.dumps(payload))
        except Exception:
            self._closed = True

    def _emit_error(self, err: Exception | str, code: str | None = None) -> None:
        if isinstance(err, Exception):
            code = code or _error_code(err)
            detail = str(err)
        else:
            detail = err
        self._events.put_nowait({"type": "error", "code": code or "bad_request", "detail": detail})

    # --- inbound ---

    async def _handle_command(self, text: str) -> None:
        try:
            command = json.loads(text)
        except ValueError:
            self._emit_error("Command is not valid JSON")
            return
        action = command.get("action") if isinstance(command, dict) else None

        try:
            if action == "start":
                session_id = await self._controller.start_session()
                self._registry.add(session_id, self._controller)
                self._events.put_nowait({"type": "session", "session_id": session_id})
            elif action == "stop":
                await self._controller.stop_session()
            elif action == "rotate":
                self._controller.rotate_segment()
            else:
                self._emit_error(f"Unknown action: {action!r}")
        except StoryCaptureError as e:
            logger.warning("Command %r failed: %s", action, e)
            self._emit_error(e)

    async def run(self) -> None:
        """Main loop: binary -> device, text -> command. Stops capture on disconnect."""
        self._sender_task = asyncio.create_task(self._sender())
        try:
            while not self._closed:
                try:
                    msg = await self._ws.receive()
                except Exception:
                    break
                if msg.get("type") == "websocket.disconnect":
                    break
                data = msg.get("bytes")
                if data is not None:
                    self._device.feed(data)
                    continue
                text = msg.get("text")
                if text is not None:
                    await self._handle_command(text)
        finally:
            if self._controller.state in (SessionState.ACTIVE, SessionState.ENDING):
                try:
                    await self._controller.stop_session()
                except StoryCaptureError as e:
                    logger.warning("Stopping session on disconnect failed: %s", e)
            self._closed = True
            self._events.put_nowait(None)
            if self._sender_task:
                try:
                    await asyncio.wait_for(self._sender_task, timeout=5.0)
                except (asyncio.CancelledError, asyncio.TimeoutError):
                    self._sender_task.cancel()
                    try:
                        await self._sender_task
                    except asyncio.CancelledError:
                        pass
