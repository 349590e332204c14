"""
Tests for segment audio uploaders and the JSONL segment store.
"""
import json
import os
import tempfile
import unittest
import wave
from unittest.mock import MagicMock, patch

from storycapture.audio.buffer import RawAudioBuffer
from storycapture.errors import UploadFailed
from storycapture.roles.classifier import Role
from storycapture.session.models import Segment, SegmentStatus, Turn
from storycapture.storage.segment_store import JsonlSegmentStore, NoOpSegmentStore
from storycapture.storage.uploader import (
    HttpUploader,
    LocalFileUploader,
    NoOpUploader,
    _sync_upload_http,
    segment_audio_path,
)

BUFFER = RawAudioBuffer(pcm=b"\x10\x00" * 1600)


class TestUploaders(unittest.IsolatedAsyncioTestCase):
    """Tests for the Uploader implementations."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    async def asyncTearDown(self):
        self.tmp.cleanup()

    async def test_segment_audio_path(self):
        self.assertEqual(segment_audio_path("abc123", 4), "sessions/abc123/segment-4.wav")

    async def test_local_uploader_writes_wav(self):
        uploader = LocalFileUploader(base_dir=self.tmp.name)

        url = await uploader.upload(BUFFER, segment_audio_path("abc123", 1))

        out_path = os.path.join(self.tmp.name, "sessions", "abc123", "segment-1.wav")
        self.assertTrue(url.startswith("file://"))
        self.assertTrue(url.endswith("segment-1.wav"))
        with wave.open(out_path, "rb") as wav:
            self.assertEqual(wav.getframerate(), 16000)
            self.assertEqual(wav.getnchannels(), 1)
            self.assertEqual(wav.getnframes(), 1600)

    async def test_local_uploader_failure_is_upload_failed(self):
        blocker = os.path.join(self.tmp.name, "blocker")
        with open(blocker, "w") as f:
            f.write("not a directory")
        uploader = LocalFileUploader(base_dir=blocker)

        with self.assertRaises(UploadFailed):
            await uploader.upload(BUFFER, "segment-1.wav")

    async def test_noop_uploader_returns_none(self):
        self.assertIsNone(await NoOpUploader().upload(BUFFER, "x.wav"))

    async def test_http_uploader_requires_url(self):
        with self.assertRaises(UploadFailed):
            await HttpUploader(url="").upload(BUFFER, "x.wav")

    async def test_http_uploader_returns_url(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {"url": "https://blob.example/x.wav"}
        client_cls = MagicMock()
        client_cls.return_value.__enter__.return_value.post.return_value = response

        with patch("storycapture.storage.uploader.httpx.Client", client_cls):
            url = await HttpUploader(url="https://upload.example").upload(BUFFER, "sessions/s/segment-1.wav")

        self.assertEqual(url, "https://blob.example/x.wav")
        kwargs = client_cls.return_value.__enter__.return_value.post.call_args.kwargs
        self.assertEqual(kwargs["data"]["path"], "sessions/s/segment-1.wav")


class TestSyncUploadHttp(unittest.TestCase):
    def test_missing_url_in_body_raises(self):
        response = MagicMock(status_code=200)
        response.json.return_value = {}
        client_cls = MagicMock()
        client_cls.return_value.__enter__.return_value.post.return_value = response

        with patch("storycapture.storage.uploader.httpx.Client", client_cls):
            with self.assertRaises(UploadFailed):
                _sync_upload_http("https://upload.example", b"RIFF", "x.wav", 5.0)

    def test_error_status_raises(self):
        response = MagicMock(status_code=500, text="boom")
        client_cls = MagicMock()
        client_cls.return_value.__enter__.return_value.post.return_value = response

        with patch("storycapture.storage.uploader.httpx.Client", client_cls):
            with self.assertRaises(UploadFailed):
                _sync_upload_http("https://upload.example", b"RIFF", "x.wav", 5.0)


class TestJsonlSegmentStore(unittest.IsolatedAsyncioTestCase):
    """Tests for the JsonlSegmentStore class."""

    async def asyncSetUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = JsonlSegmentStore(store_dir=self.tmp.name)

    async def asyncTearDown(self):
        self.tmp.cleanup()

    def read_records(self, path):
        with open(path, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    async def test_writes_segment_and_turn_records(self):
        turn = Turn(1, Role.ELDERLY, "speaker_0", "Back then", 0.0, 900.0, -0.2)
        segment = Segment(segment_number=1, duration_ms=30000.0, status=SegmentStatus.PROCESSED, turns=[turn])

        await self.store.start("abc123")
        self.store.save_segment("abc123", segment)
        self.store.save_turns("abc123", segment.turns)
        await self.store.close()

        records = self.read_records(os.path.join(self.tmp.name, "abc123.jsonl"))
        self.assertEqual([r["kind"] for r in records], ["segment", "turns"])
        self.assertEqual(records[0]["segment"]["status"], "processed")
        self.assertEqual(records[0]["segment"]["turn_count"], 1)
        self.assertEqual(records[1]["segment_number"], 1)
        self.assertEqual(records[1]["turns"][0]["role"], "elderly")
        self.assertEqual(records[1]["turns"][0]["text"], "Back then")

    async def test_empty_turns_are_not_written(self):
        await self.store.start("abc123")
        self.store.save_turns("abc123", [])
        await self.store.close()

        self.assertEqual(self.read_records(self.store.path), [])

    async def test_save_before_start_is_dropped(self):
        with self.assertLogs("storycapture.storage.segment_store", level="WARNING"):
            self.store.save_segment("abc123", Segment(segment_number=1))

    async def test_store_can_be_reused_for_next_session(self):
        await self.store.start("first")
        self.store.save_segment("first", Segment(segment_number=1))
        await self.store.close()
        await self.store.start("second")
        self.store.save_segment("second", Segment(segment_number=1))
        await self.store.close()

        self.assertTrue(self.store.path.endswith("second.jsonl"))
        self.assertEqual(len(self.read_records(self.store.path)), 1)

    async def test_noop_store(self):
        store = NoOpSegmentStore()
        await store.start("abc123")
        store.save_segment("abc123", Segment(segment_number=1))
        await store.close()


if __name__ == '__main__':
    unittest.main()
