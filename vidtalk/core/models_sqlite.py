"""
SQLite data models (plain dataclasses) for VidTalk.
"""

from dataclasses import dataclass
from typing import Optional

from vidtalk.core.constants import JobStatus


@dataclass
class Video:
    id: str
    title: str
    filename: str
    url: str
    description: Optional[str] = None
    duration: Optional[int] = None
    status: str = "processing"
    uploaded_at: Optional[str] = None
    processed_at: Optional[str] = None


@dataclass
class Transcript:
    id: str
    video_id: str
    content: str
    language: Optional[str] = "en"
    created_at: Optional[str] = None


@dataclass
class StoredSegment:
    id: str
    transcript_id: str
    text: str
    start_time: float
    end_time: float
    order: int
    speaker: Optional[str] = None
    confidence: Optional[float] = None


# Fields reported by a status query, in order.
STATUS_FIELDS = (
    'status', 'video_id', 'started_at', 'completed_at',
    'failed_at', 'error', 'audio_url',
)


@dataclass
class ProcessingJob:
    key: str                         # video identifier the processor is addressed by
    status: str = JobStatus.IDLE
    video_id: Optional[str] = None
    source_url: Optional[str] = None
    stage: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    audio_url: Optional[str] = None

    def as_status(self) -> dict:
        return {name: getattr(self, name) for name in STATUS_FIELDS}
