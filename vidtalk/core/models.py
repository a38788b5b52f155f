"""
In-memory pipeline types (plain dataclasses). None of these are persisted directly.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class AudioChunk:
    idx: int
    start: int                       # byte offset into the source buffer
    end: int                         # exclusive
    data: bytes

    @property
    def size(self) -> int:
        return self.end - self.start


@dataclass
class WordToken:
    text: str
    start: float = 0.0
    end: float = 0.0
    speaker: Optional[str] = None
    confidence: Optional[float] = None


@dataclass
class ChunkTranscript:
    """Normalized output of one inference call."""
    text: str
    words: list[WordToken] = field(default_factory=list)
    language: Optional[str] = None


@dataclass
class TranscriptionResult:
    """Merged output of every chunk for one run."""
    full_text: str
    words: list[WordToken] = field(default_factory=list)
    language: Optional[str] = None

    @property
    def word_count(self) -> int:
        return len(self.words)


@dataclass
class TranscriptSegment:
    text: str
    start_time: float
    end_time: float
    order: int


@dataclass
class ConversionResult:
    success: bool
    audio_url: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ProcessingSummary:
    video_id: str
    audio_url: str
    chunk_count: int
    word_count: int
    transcript_length: int
    segment_count: int
