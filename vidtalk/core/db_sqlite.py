"""
SQLite database layer for VidTalk.
Thread-safe via check_same_thread=False + explicit locking.
Every sqlite3 failure surfaces as PersistenceError.
"""

import sqlite3
import threading
import uuid
import logging
from contextlib import contextmanager
from dataclasses import asdict, fields
from datetime import datetime, timezone
from pathlib import Path

from vidtalk.core.constants import DB_PATH, VideoStatus
from vidtalk.core.error_codes import PersistenceError
from vidtalk.core.models_sqlite import Video, Transcript, StoredSegment, ProcessingJob

logger = logging.getLogger(__name__)

_SCHEMA_VERSION = 1

_CREATE_TABLES = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS videos (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    filename TEXT NOT NULL,
    url TEXT NOT NULL,
    duration INTEGER,
    status TEXT NOT NULL DEFAULT 'processing',
    uploaded_at TEXT NOT NULL,
    processed_at TEXT
);

CREATE TABLE IF NOT EXISTS transcripts (
    id TEXT PRIMARY KEY,
    video_id TEXT NOT NULL,
    content TEXT NOT NULL,
    language TEXT DEFAULT 'en',
    created_at TEXT NOT NULL,
    FOREIGN KEY (video_id) REFERENCES videos(id)
);

CREATE INDEX IF NOT EXISTS idx_transcripts_video_id ON transcripts(video_id);

CREATE TABLE IF NOT EXISTS transcript_segments (
    id TEXT PRIMARY KEY,
    transcript_id TEXT NOT NULL,
    text TEXT NOT NULL,
    start_time REAL NOT NULL,
    end_time REAL NOT NULL,
    speaker TEXT,
    confidence REAL,
    "order" INTEGER NOT NULL,
    FOREIGN KEY (transcript_id) REFERENCES transcripts(id)
);

CREATE INDEX IF NOT EXISTS idx_segments_transcript_order
    ON transcript_segments(transcript_id, "order");

CREATE TABLE IF NOT EXISTS processing_jobs (
    key TEXT PRIMARY KEY,
    status TEXT NOT NULL DEFAULT 'idle',
    video_id TEXT,
    source_url TEXT,
    stage TEXT,
    started_at TEXT,
    completed_at TEXT,
    failed_at TEXT,
    error TEXT,
    error_code TEXT,
    audio_url TEXT
);
"""

_JOB_COLUMNS = [f.name for f in fields(ProcessingJob)]


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string, the format of every stored timestamp."""
    return datetime.now(timezone.utc).isoformat()


class Database:
    """SQLite database wrapper for VidTalk."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self._lock = threading.RLock()
        self._ensure_dirs()
        try:
            self.conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            self.conn.execute("PRAGMA foreign_keys=ON")
            self._migrate()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to open database {self.db_path}: {e}")

    def _ensure_dirs(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _migrate(self):
        cur = self.conn.cursor()
        cur.executescript(_CREATE_TABLES)
        # Set schema version
        cur.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (_SCHEMA_VERSION,),
        )
        self.conn.commit()

    def close(self):
        if self.conn:
            self.conn.close()

    # ── Helpers ───────────────────────────────────────────────────────

    @contextmanager
    def _transaction(self, action: str):
        """Serialize access and commit; roll back and wrap sqlite errors."""
        with self._lock:
            try:
                yield self.conn
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                logger.error("Database error during %s: %s", action, e)
                raise PersistenceError(f"{action} failed: {e}")

    def _fetch_one(self, sql: str, params: tuple, action: str):
        with self._transaction(action) as conn:
            return conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple, action: str) -> list:
        with self._transaction(action) as conn:
            return conn.execute(sql, params).fetchall()

    # ── Videos ────────────────────────────────────────────────────────

    def create_video(self, title: str, filename: str, url: str,
                     video_id: str | None = None, description: str | None = None,
                     duration: int | None = None,
                     status: str = VideoStatus.PROCESSING) -> Video:
        video = Video(
            id=video_id or str(uuid.uuid4()),
            title=title,
            filename=filename,
            url=url,
            description=description,
            duration=duration,
            status=status,
            uploaded_at=utc_now(),
        )
        with self._transaction("create_video") as conn:
            conn.execute(
                """INSERT INTO videos
                   (id, title, description, filename, url, duration,
                    status, uploaded_at, processed_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (video.id, video.title, video.description, video.filename,
                 video.url, video.duration, video.status, video.uploaded_at,
                 video.processed_at),
            )
        return video

    def get_video(self, video_id: str) -> Video | None:
        row = self._fetch_one("SELECT * FROM videos WHERE id = ?", (video_id,), "get_video")
        return Video(**dict(row)) if row else None

    def get_videos(self) -> list[Video]:
        rows = self._fetch_all("SELECT * FROM videos ORDER BY uploaded_at DESC", (), "get_videos")
        return [Video(**dict(r)) for r in rows]

    def update_video_status(self, video_id: str, status: str) -> Video | None:
        """Set a video's status. Unknown videos are left alone and None is returned."""
        if self.get_video(video_id) is None:
            logger.warning("update_video_status: video %s not found", video_id)
            return None

        processed_at = utc_now() if status == VideoStatus.COMPLETED else None
        with self._transaction("update_video_status") as conn:
            if processed_at:
                conn.execute(
                    "UPDATE videos SET status = ?, processed_at = ? WHERE id = ?",
                    (status, processed_at, video_id),
                )
            else:
                conn.execute(
                    "UPDATE videos SET status = ? WHERE id = ?",
                    (status, video_id),
                )
        return self.get_video(video_id)

    def delete_video(self, video_id: str) -> bool:
        """Delete a video with its transcript, segments and processing job."""
        with self._transaction("delete_video") as conn:
            conn.execute(
                """DELETE FROM transcript_segments WHERE transcript_id IN
                   (SELECT id FROM transcripts WHERE video_id = ?)""",
                (video_id,),
            )
            conn.execute("DELETE FROM transcripts WHERE video_id = ?", (video_id,))
            conn.execute("DELETE FROM processing_jobs WHERE key = ?", (video_id,))
            cur = conn.execute("DELETE FROM videos WHERE id = ?", (video_id,))
            return cur.rowcount > 0

    # ── Transcripts ───────────────────────────────────────────────────

    @staticmethod
    def _insert_transcript(conn, transcript: Transcript):
        conn.execute(
            """INSERT INTO transcripts (id, video_id, content, language, created_at)
               VALUES (?, ?, ?, ?, ?)""",
            (transcript.id, transcript.video_id, transcript.content,
             transcript.language, transcript.created_at),
        )

    @staticmethod
    def _insert_segment(conn, segment: StoredSegment):
        conn.execute(
            """INSERT INTO transcript_segments
               (id, transcript_id, text, start_time, end_time,
                speaker, confidence, "order")
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (segment.id, segment.transcript_id, segment.text,
             segment.start_time, segment.end_time, segment.speaker,
             segment.confidence, segment.order),
        )

    def create_transcript(self, id: str, video_id: str, content: str,
                          language: str | None, created_at: str) -> Transcript:
        transcript = Transcript(id=id, video_id=video_id, content=content,
                                language=language, created_at=created_at)
        with self._transaction("create_transcript") as conn:
            self._insert_transcript(conn, transcript)
        return transcript

    def create_transcript_segment(self, id: str, transcript_id: str, text: str,
                                  start_time: float, end_time: float, order: int,
                                  speaker: str | None = None,
                                  confidence: float | None = None) -> StoredSegment:
        segment = StoredSegment(id=id, transcript_id=transcript_id, text=text,
                                start_time=start_time, end_time=end_time, order=order,
                                speaker=speaker, confidence=confidence)
        with self._transaction("create_transcript_segment") as conn:
            self._insert_segment(conn, segment)
        return segment

    def save_transcript(self, transcript: Transcript,
                        segments: list[StoredSegment]) -> Transcript:
        """Write a transcript and all of its segments in one transaction.
        Either every row lands or none does.
        """
        with self._transaction("save_transcript") as conn:
            self._insert_transcript(conn, transcript)
            for segment in segments:
                self._insert_segment(conn, segment)
        return transcript

    def get_transcript_by_video_id(self, video_id: str) -> Transcript | None:
        row = self._fetch_one(
            "SELECT * FROM transcripts WHERE video_id = ? ORDER BY created_at DESC LIMIT 1",
            (video_id,), "get_transcript_by_video_id",
        )
        return Transcript(**dict(row)) if row else None

    def get_transcript_segments(self, transcript_id: str) -> list[StoredSegment]:
        rows = self._fetch_all(
            'SELECT * FROM transcript_segments WHERE transcript_id = ? ORDER BY "order" ASC',
            (transcript_id,), "get_transcript_segments",
        )
        return [StoredSegment(**dict(r)) for r in rows]

    def get_transcript_with_segments(self, video_id: str) -> dict | None:
        transcript = self.get_transcript_by_video_id(video_id)
        if transcript is None:
            return None
        return {
            'transcript': transcript,
            'segments': self.get_transcript_segments(transcript.id),
        }

    # ── Processing jobs ───────────────────────────────────────────────

    def get_processing_job(self, key: str) -> ProcessingJob | None:
        row = self._fetch_one(
            "SELECT * FROM processing_jobs WHERE key = ?", (key,), "get_processing_job",
        )
        return ProcessingJob(**dict(row)) if row else None

    def save_processing_job(self, job: ProcessingJob):
        """Insert or overwrite the job record for ``job.key``."""
        values = asdict(job)
        placeholders = ', '.join('?' for _ in _JOB_COLUMNS)
        with self._transaction("save_processing_job") as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO processing_jobs ({', '.join(_JOB_COLUMNS)}) "
                f"VALUES ({placeholders})",
                [values[c] for c in _JOB_COLUMNS],
            )
