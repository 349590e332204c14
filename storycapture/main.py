"""
FastAPI app: WebSocket endpoint for segmented conversation capture;
HTTP API: health, live session stats and session detail.

Client sends binary PCM 16-bit mono 16kHz plus JSON commands
{"action": "start" | "stop" | "rotate"}. Server pushes JSON events:
{ "type": "session" | "segment" | "complete" | "error", ... }
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect

from storycapture.config import get_settings
from storycapture.diarization.base import DiarizationProvider
from storycapture.diarization.elevenlabs import ElevenLabsDiarizationProvider
from storycapture.schemas.session import SegmentOut, SessionOut, StatsOut, snapshot_stats
from storycapture.session.registry import SessionRegistry
from storycapture.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging() -> None:
    """Apply LOG_LEVEL to the storycapture logger tree; add a file handler when LOG_FILE is set."""
    settings = get_settings()
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    root = logging.getLogger("storycapture")
    root.setLevel(level)
    if not logging.getLogger().handlers and not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        root.addHandler(handler)
    if settings.LOG_FILE:
        try:
            file_handler = logging.FileHandler(settings.LOG_FILE, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not open log file %s: %s", settings.LOG_FILE, e)
        else:
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            root.addHandler(file_handler)


def get_diarization_provider(app: FastAPI) -> DiarizationProvider:
    """Provider for new sessions. app.state.provider overrides (tests, alternate backends)."""
    provider = getattr(app.state, "provider", None)
    if provider is not None:
        return provider
    return ElevenLabsDiarizationProvider()


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    settings = get_settings()
    if not settings.ELEVENLABS_API_KEY and getattr(app.state, "provider", None) is None:
        logger.warning("ELEVENLABS_API_KEY not set; every segment will fail diarization")
    app.state.registry = SessionRegistry()
    yield
    app.state.registry = None


app = FastAPI(
    title="Story Capture",
    description="Segmented conversation capture with speaker diarization and role tagging",
    lifespan=lifespan,
)


def _registry(app: FastAPI) -> SessionRegistry:
    registry = getattr(app.state, "registry", None)
    if registry is None:
        raise HTTPException(status_code=503, detail="App not initialized")
    return registry


@app.websocket("/ws/session")
async def websocket_session(websocket: WebSocket) -> None:
    """
    WebSocket: client sends raw PCM 16-bit mono 16kHz (binary) and JSON commands (text).
    Server sends JSON events: session, segment, complete, error.
    """
    await websocket.accept()
    registry = websocket.app.state.registry
    manager = WebSocketManager(websocket, get_diarization_provider(websocket.app), registry)
    try:
        await manager.run()
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WebSocket session failed")
        try:
            await websocket.close()
        except Exception:
            pass


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


@app.get("/api/sessions/{session_id}/stats", response_model=StatsOut)
async def session_stats(session_id: str) -> StatsOut:
    registry = _registry(app)
    controller = registry.live(session_id)
    if controller is not None:
        return StatsOut.from_stats(controller.stats())
    snapshot = registry.completed(session_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return StatsOut.from_stats(snapshot_stats(snapshot))


@app.get("/api/sessions/{session_id}", response_model=SessionOut)
async def session_detail(session_id: str) -> SessionOut:
    """Live sessions: segments so far + stats. Ended sessions: the frozen snapshot."""
    registry = _registry(app)
    controller = registry.live(session_id)
    if controller is not None:
        segments = controller.segments
        return SessionOut(
            session_id=session_id,
            state=controller.state.value,
            stats=StatsOut.from_stats(controller.stats()),
            segments=[SegmentOut.from_segment(s) for s in segments],
        )
    snapshot = registry.completed(session_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return SessionOut.from_snapshot(snapshot, registry.completed_segments(session_id))
