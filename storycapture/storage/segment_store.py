"""
SegmentStore: session-based, append-only persistence of finalized segments and turns.

Fire-and-forget from the capture pipeline's point of view: save_* only queues a
record; a worker task writes it. Write failures are logged, never raised, so a
broken disk never ends a recording session.

One file per session: {SEGMENT_STORE_DIR}/{session_id}.jsonl, one JSON record per line:
  {"kind": "segment", "session_id": ..., "segment": {...}}
  {"kind": "turns", "session_id": ..., "segment_number": n, "turns": [...]}
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Optional, Sequence

from storycapture.config import get_settings
from storycapture.session.models import Segment, Turn

logger = logging.getLogger(__name__)


def _turn_record(turn: Turn) -> dict:
    record = asdict(turn)
    record["role"] = turn.role.value
    return record


class SegmentStore(ABC):
    """Base for segment persistence. Only finalized segments are saved."""

    @abstractmethod
    async def start(self, session_id: str) -> None:
        """Open storage for a session. Call once at session start."""
        ...

    @abstractmethod
    def save_segment(self, session_id: str, segment: Segment) -> None:
        """Queue one finalized segment. Non-blocking."""
        ...

    @abstractmethod
    def save_turns(self, session_id: str, turns: Sequence[Turn]) -> None:
        """Queue one segment's turns. Non-blocking."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Flush and close. Safe to call from finally."""
        ...


class NoOpSegmentStore(SegmentStore):
    """When persistence is disabled. No file I/O."""

    async def start(self, session_id: str) -> None:
        pass

    def save_segment(self, session_id: str, segment: Segment) -> None:
        pass

    def save_turns(self, session_id: str, turns: Sequence[Turn]) -> None:
        pass

    async def close(self) -> None:
        pass


class JsonlSegmentStore(SegmentStore):
    """
    Append-only JSON lines. Worker task drains the queue so finalize tasks
    never block on disk.
    """

    def __init__(self, store_dir: Optional[str] = None) -> None:
        self._store_dir = store_dir or get_settings().SEGMENT_STORE_DIR
        self._path: Optional[str] = None
        self._file = None
        self._queue: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._started = False

    @property
    def path(self) -> Optional[str]:
        return self._path

    async def _worker(self) -> None:
        """Drain queue: write each line (append + newline + flush). None = close. Log errors, never crash."""
        while True:
            line = await self._queue.get()
            if line is None:
                break
            if self._file is None:
                continue
            try:
                self._file.write(line + "\n")
                self._file.flush()
            except OSError as e:
                logger.warning("Segment store write failed for %s: %s", self._path, e)
        try:
            if self._file is not None:
                self._file.close()
        except OSError as e:
            logger.warning("Segment store close failed for %s: %s", self._path, e)
        finally:
            self._file = None

    async def start(self, session_id: str) -> None:
        if self._started:
            return
        self._started = True
        self._queue = asyncio.Queue()
        self._path = os.path.join(self._store_dir, f"{session_id}.jsonl")
        try:
            os.makedirs(self._store_dir, exist_ok=True)
            self._file = open(self._path, "a", encoding="utf-8")
        except OSError as e:
            logger.warning("Segment store open failed for %s: %s", self._path, e)
        self._worker_task = asyncio.create_task(self._worker())

    def _enqueue(self, record: dict) -> None:
        if not self._started:
            logger.warning("Segment store not started; dropping %s record", record.get("kind"))
            return
        try:
            self._queue.put_nowait(json.dumps(record, ensure_ascii=False))
        except (TypeError, ValueError) as e:
            logger.warning("Segment store could not serialize %s record: %s", record.get("kind"), e)

    def save_segment(self, session_id: str, segment: Segment) -> None:
        self._enqueue({"kind": "segment", "session_id": session_id, "segment": segment.to_dict()})

    def save_turns(self, session_id: str, turns: Sequence[Turn]) -> None:
        if not turns:
            return
        self._enqueue(
            {
                "kind": "turns",
                "session_id": session_id,
                "segment_number": turns[0].segment_number,
                "turns": [_turn_record(t) for t in turns],
            }
        )

    async def close(self) -> None:
        """Signal worker to stop and close file."""
        if not self._started or self._worker_task is None:
            return
        try:
            self._queue.put_nowait(None)
            await asyncio.wait_for(self._worker_task, timeout=5.0)
        except asyncio.TimeoutError:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
        self._worker_task = None
        self._started = False


def create_segment_store() -> SegmentStore:
    """Create store when SEGMENT_STORE_ENABLED is true; else no-op."""
    if not get_settings().SEGMENT_STORE_ENABLED:
        return NoOpSegmentStore()
    return JsonlSegmentStore()
