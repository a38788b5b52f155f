#!/usr/bin/env python3
"""
Unit tests for VidTalk core modules.
Tests cover: chunking, merging, segment grouping, error codes, config, database.
"""

import sys
import os
import tempfile
import types
from datetime import datetime, timedelta
from pathlib import Path
from unittest import mock

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

import unittest

from vidtalk.core.constants import (
    ErrorCode, JobStatus, VideoStatus, CHUNK_SIZE_BYTES, API_TOKEN_ENV,
)
from vidtalk.core.chunking import (
    needs_chunking, chunk_overlap, count_chunks, split_audio_bytes,
)
from vidtalk.core.config import AppConfig
from vidtalk.core.error_codes import (
    JobError, ConversionError, DownloadError, InferenceError, PersistenceError,
    error_message, error_code_for,
)
from vidtalk.core.merge import merge_chunk_transcripts
from vidtalk.core.models import ChunkTranscript, WordToken
from vidtalk.core.models_sqlite import ProcessingJob, StoredSegment, Transcript
from vidtalk.core.db_sqlite import utc_now
from vidtalk.core.segments import group_words_into_segments, format_timestamp


def _words(texts, step=0.5, length=0.4):
    return [WordToken(text=t, start=i * step, end=i * step + length)
            for i, t in enumerate(texts)]


class TestChunking(unittest.TestCase):
    """Test byte-based chunk splitting."""

    def test_needs_chunking(self):
        self.assertFalse(needs_chunking(CHUNK_SIZE_BYTES))
        self.assertTrue(needs_chunking(CHUNK_SIZE_BYTES + 1))

    def test_overlap_is_ten_percent(self):
        self.assertEqual(chunk_overlap(1024 * 1024), 104857)
        self.assertEqual(chunk_overlap(100), 10)

    def test_small_buffer_single_chunk(self):
        data = b"x" * 100
        chunks = list(split_audio_bytes(data, 100))
        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].data, data)
        self.assertEqual((chunks[0].start, chunks[0].end), (0, 100))

    def test_empty_buffer_single_chunk(self):
        chunks = list(split_audio_bytes(b"", 100))
        self.assertEqual(len(chunks), 1)
        self.assertEqual(chunks[0].data, b"")

    def test_large_buffer_offsets(self):
        data = bytes(i % 256 for i in range(350))
        chunks = list(split_audio_bytes(data, 100))

        self.assertEqual(len(chunks), 4)
        self.assertEqual(count_chunks(len(data), 100), 4)
        self.assertEqual([(c.start, c.end) for c in chunks],
                         [(0, 100), (90, 200), (190, 300), (290, 350)])
        for chunk in chunks:
            self.assertEqual(chunk.data, data[chunk.start:chunk.end])

    def test_consecutive_chunks_overlap(self):
        data = b"\x01" * 1050
        chunks = list(split_audio_bytes(data, 100))
        self.assertEqual(len(chunks), 11)
        self.assertEqual(chunks[0].start, 0)
        for prev, cur in zip(chunks, chunks[1:]):
            self.assertEqual(prev.end - cur.start, 10)
        self.assertEqual(chunks[-1].end, len(data))

    def test_split_is_lazy(self):
        result = split_audio_bytes(b"abc", 2)
        self.assertIsInstance(result, types.GeneratorType)
        self.assertEqual(next(result).data, b"ab")

    def test_invalid_limit(self):
        with self.assertRaises(ValueError):
            list(split_audio_bytes(b"abc", 0))


class TestMerge(unittest.TestCase):
    """Test chunk transcript merging."""

    def test_merge_joins_text(self):
        merged = merge_chunk_transcripts([ChunkTranscript(text="a"),
                                          ChunkTranscript(text="b c")])
        self.assertEqual(merged.full_text, "a b c")

    def test_merge_empty(self):
        merged = merge_chunk_transcripts([])
        self.assertEqual(merged.full_text, "")
        self.assertEqual(merged.words, [])
        self.assertIsNone(merged.language)

    def test_merge_concatenates_words_unchanged(self):
        first = [WordToken("one", 0.0, 0.5), WordToken("two", 0.5, 1.0)]
        second = [WordToken("three", 0.2, 0.7)]
        merged = merge_chunk_transcripts([
            ChunkTranscript(text="one two", words=first),
            ChunkTranscript(text="", words=[]),
            ChunkTranscript(text="three", words=second, language="en"),
        ])
        self.assertEqual([w.text for w in merged.words], ["one", "two", "three"])
        # Timestamps are passed through as reported
        self.assertEqual(merged.words[2].start, 0.2)
        self.assertEqual(merged.word_count, 3)
        self.assertEqual(merged.language, "en")


class TestSegments(unittest.TestCase):
    """Test word-to-segment grouping."""

    def test_empty_input(self):
        self.assertEqual(group_words_into_segments([]), [])

    def test_max_words_boundary(self):
        texts = [f"w{i}" for i in range(16)]
        segments = group_words_into_segments(_words(texts))
        self.assertEqual(len(segments), 2)
        self.assertEqual(segments[0].text, " ".join(texts[:15]))
        self.assertEqual(segments[1].text, "w15")
        self.assertEqual([s.order for s in segments], [0, 1])

    def test_sentence_boundary(self):
        words = [WordToken("Hi", 0.0, 0.3), WordToken("there.", 0.3, 0.8),
                 WordToken("Next", 1.0, 1.2)]
        segments = group_words_into_segments(words)
        self.assertEqual(segments[0].text, "Hi there.")
        self.assertEqual(segments[0].start_time, 0.0)
        self.assertEqual(segments[0].end_time, 0.8)
        self.assertEqual(segments[1].text, "Next")

    def test_question_and_exclamation_close(self):
        segments = group_words_into_segments(_words(["Really?", "Yes!", "ok"]))
        self.assertEqual([s.text for s in segments], ["Really?", "Yes!", "ok"])

    def test_duration_boundary(self):
        words = [WordToken("a", 0, 3), WordToken("b", 4, 7),
                 WordToken("c", 8, 11), WordToken("d", 12, 15)]
        segments = group_words_into_segments(words)
        self.assertEqual([s.text for s in segments], ["a b c", "d"])
        self.assertEqual((segments[0].start_time, segments[0].end_time), (0, 11))
        self.assertEqual((segments[1].start_time, segments[1].end_time), (12, 15))

    def test_custom_limits(self):
        segments = group_words_into_segments(_words(["a", "b", "c", "d", "e"]),
                                             max_words_per_segment=2)
        self.assertEqual([s.text for s in segments], ["a b", "c d", "e"])

    def test_empty_text_dropped_without_consuming_order(self):
        words = [WordToken("", 0, 1), WordToken("Hello.", 1, 2)]
        segments = group_words_into_segments(words, max_words_per_segment=1)
        self.assertEqual(len(segments), 1)
        self.assertEqual(segments[0].text, "Hello.")
        self.assertEqual(segments[0].order, 0)

    def test_missing_times_default_to_zero(self):
        segments = group_words_into_segments([WordToken("a", None, None)])
        self.assertEqual((segments[0].start_time, segments[0].end_time), (0, 0))

    def test_deterministic(self):
        words = _words(["The", "quick", "fox.", "It", "ran", "away"])
        self.assertEqual(group_words_into_segments(words),
                         group_words_into_segments(words))

    def test_format_timestamp(self):
        self.assertEqual(format_timestamp(0), "0:00")
        self.assertEqual(format_timestamp(65.7), "1:05")
        self.assertEqual(format_timestamp(3725), "1:02:05")


class TestErrorCodes(unittest.TestCase):
    """Test error taxonomy."""

    def test_codes_bound_to_subclasses(self):
        self.assertEqual(ConversionError("x").code, ErrorCode.CONVERSION_FAILED)
        self.assertEqual(DownloadError("x").code, ErrorCode.DOWNLOAD_FAILED)
        self.assertEqual(InferenceError("x").code, ErrorCode.INFERENCE_FAILED)
        self.assertEqual(PersistenceError("x").code, ErrorCode.PERSISTENCE_FAILED)

    def test_message_and_str(self):
        err = ConversionError("boom")
        self.assertIsInstance(err, JobError)
        self.assertEqual(err.message, "boom")
        self.assertEqual(str(err), f"[{ErrorCode.CONVERSION_FAILED}] boom")
        self.assertEqual(error_message(err), "boom")

    def test_unexpected_errors(self):
        self.assertEqual(error_message(ValueError("bad value")), "bad value")
        self.assertEqual(error_message(RuntimeError()), "RuntimeError")
        self.assertEqual(error_code_for(ValueError()), ErrorCode.UNEXPECTED)


class TestConfig(unittest.TestCase):
    """Test JSON config loading and validation."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "config.json"

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_defaults(self):
        config = AppConfig(self.path)
        self.assertEqual(config.chunk_size_bytes, CHUNK_SIZE_BYTES)
        self.assertEqual(config.max_words_per_segment, 15)
        self.assertEqual(config.max_segment_duration_sec, 10.0)
        self.assertEqual(config.whisper_model, "@cf/openai/whisper")
        self.assertEqual(config.default_language, "en")

    def test_clamps_values(self):
        config = AppConfig(self.path)
        config.set('chunk_size_bytes', 1)
        self.assertEqual(config.chunk_size_bytes, 64 * 1024)
        config.set('max_words_per_segment', 'abc')
        self.assertEqual(config.max_words_per_segment, 15)
        config.set('max_segment_duration_sec', 5000)
        self.assertEqual(config.max_segment_duration_sec, 600.0)

    def test_persisted_and_reloaded(self):
        config = AppConfig(self.path)
        config.set('converter_url', 'http://converter:8080/')
        reloaded = AppConfig(self.path)
        self.assertEqual(reloaded.converter_url, 'http://converter:8080')

    def test_corrupt_file_uses_defaults(self):
        self.path.write_text("{not json")
        config = AppConfig(self.path)
        self.assertEqual(config.chunk_size_bytes, CHUNK_SIZE_BYTES)

    def test_api_token_from_environment(self):
        with mock.patch.dict(os.environ, {API_TOKEN_ENV: "secret"}):
            self.assertEqual(AppConfig.api_token(), "secret")
        with mock.patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(AppConfig.api_token())


class TestDatabase(unittest.TestCase):
    """Test SQLite database operations."""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.db_path = Path(self.tmpdir.name) / "test.db"
        from vidtalk.core.db_sqlite import Database
        self.db = Database(self.db_path)
        self.video = self.db.create_video("Talk", "talk.mp4", "https://cdn.example.com/talk.mp4",
                                          video_id="vid-1")

    def tearDown(self):
        self.db.close()
        self.tmpdir.cleanup()

    def test_create_and_get_video(self):
        fetched = self.db.get_video("vid-1")
        self.assertEqual(fetched.title, "Talk")
        self.assertEqual(fetched.status, VideoStatus.PROCESSING)
        self.assertIsNotNone(fetched.uploaded_at)
        self.assertEqual(len(self.db.get_videos()), 1)

    def test_update_video_status(self):
        updated = self.db.update_video_status("vid-1", VideoStatus.COMPLETED)
        self.assertEqual(updated.status, VideoStatus.COMPLETED)
        self.assertIsNotNone(updated.processed_at)

        failed = self.db.update_video_status("vid-1", VideoStatus.FAILED)
        self.assertEqual(failed.status, VideoStatus.FAILED)

    def test_update_unknown_video_is_noop(self):
        self.assertIsNone(self.db.update_video_status("missing", VideoStatus.FAILED))

    def test_transcript_segments_ordered_by_order(self):
        self.db.create_transcript("t-1", "vid-1", "a b", "en", utc_now())
        self.db.create_transcript_segment("s-2", "t-1", "b", 1.0, 2.0, 1)
        self.db.create_transcript_segment("s-1", "t-1", "a", 0.0, 1.0, 0)

        found = self.db.get_transcript_with_segments("vid-1")
        self.assertEqual(found['transcript'].content, "a b")
        self.assertEqual([s.order for s in found['segments']], [0, 1])
        self.assertIsNone(found['segments'][0].speaker)
        self.assertIsNone(found['segments'][0].confidence)

    def test_no_transcript(self):
        self.assertIsNone(self.db.get_transcript_by_video_id("vid-1"))
        self.assertIsNone(self.db.get_transcript_with_segments("vid-1"))

    def test_duplicate_insert_raises_persistence_error(self):
        self.db.create_transcript("t-1", "vid-1", "a", "en", utc_now())
        with self.assertRaises(PersistenceError):
            self.db.create_transcript("t-1", "vid-1", "a", "en", utc_now())

    def test_transcript_requires_video(self):
        with self.assertRaises(PersistenceError):
            self.db.create_transcript("t-1", "missing", "a", "en", utc_now())

    def test_utc_now_is_iso_utc(self):
        stamp = datetime.fromisoformat(utc_now())
        self.assertEqual(stamp.utcoffset(), timedelta(0))

    def test_save_transcript_writes_segments(self):
        transcript = Transcript(id="t-1", video_id="vid-1", content="a b",
                                language="en", created_at=utc_now())
        self.db.save_transcript(transcript, [
            StoredSegment(id="s-1", transcript_id="t-1", text="a", start_time=0.0,
                          end_time=1.0, order=0),
            StoredSegment(id="s-2", transcript_id="t-1", text="b", start_time=1.0,
                          end_time=2.0, order=1),
        ])
        found = self.db.get_transcript_with_segments("vid-1")
        self.assertEqual(found['transcript'], transcript)
        self.assertEqual([s.text for s in found['segments']], ["a", "b"])

    def test_save_transcript_is_all_or_nothing(self):
        transcript = Transcript(id="t-1", video_id="vid-1", content="a b",
                                language="en", created_at=utc_now())
        segments = [
            StoredSegment(id="s-1", transcript_id="t-1", text="a", start_time=0.0,
                          end_time=1.0, order=0),
            # NOT NULL violation on the second row
            StoredSegment(id="s-2", transcript_id="t-1", text=None, start_time=1.0,
                          end_time=2.0, order=1),
        ]
        with self.assertRaises(PersistenceError):
            self.db.save_transcript(transcript, segments)

        self.assertIsNone(self.db.get_transcript_by_video_id("vid-1"))
        self.assertEqual(self.db.get_transcript_segments("t-1"), [])

    def test_processing_job_roundtrip(self):
        self.assertIsNone(self.db.get_processing_job("vid-1"))
        job = ProcessingJob(key="vid-1", status=JobStatus.PROCESSING, video_id="vid-1",
                            source_url="https://cdn.example.com/talk.mp4",
                            started_at=utc_now())
        self.db.save_processing_job(job)
        self.assertEqual(self.db.get_processing_job("vid-1"), job)

        self.db.save_processing_job(ProcessingJob(key="vid-1", status=JobStatus.FAILED,
                                                  error="boom"))
        fetched = self.db.get_processing_job("vid-1")
        self.assertEqual(fetched.status, JobStatus.FAILED)
        self.assertIsNone(fetched.started_at)

    def test_delete_video_cascades(self):
        self.db.create_transcript("t-1", "vid-1", "a", "en", utc_now())
        self.db.create_transcript_segment("s-1", "t-1", "a", 0.0, 1.0, 0)
        self.db.save_processing_job(ProcessingJob(key="vid-1"))

        self.assertTrue(self.db.delete_video("vid-1"))
        self.assertIsNone(self.db.get_video("vid-1"))
        self.assertIsNone(self.db.get_transcript_by_video_id("vid-1"))
        self.assertEqual(self.db.get_transcript_segments("t-1"), [])
        self.assertIsNone(self.db.get_processing_job("vid-1"))
        self.assertFalse(self.db.delete_video("vid-1"))


if __name__ == "__main__":
    unittest.main()
