"""
Group word-level timestamps into readable transcript segments.
"""

import logging
from typing import Iterable

from vidtalk.core.constants import (
    MAX_WORDS_PER_SEGMENT, MAX_SEGMENT_DURATION_SEC, SENTENCE_END_CHARS,
)
from vidtalk.core.models import WordToken, TranscriptSegment

logger = logging.getLogger(__name__)


def _build_segment(words: list[WordToken], order: int) -> TranscriptSegment | None:
    text = ' '.join(w.text or '' for w in words).strip()
    if not text:
        return None
    return TranscriptSegment(
        text=text,
        start_time=words[0].start or 0,
        end_time=words[-1].end or 0,
        order=order,
    )


def group_words_into_segments(words: Iterable[WordToken],
                              max_words_per_segment: int = MAX_WORDS_PER_SEGMENT,
                              max_duration_per_segment: float = MAX_SEGMENT_DURATION_SEC,
                              ) -> list[TranscriptSegment]:
    """
    Group time-ordered words into sentence/phrase segments in one pass.

    A segment closes when the word ends a sentence (. ! ?), when it reaches
    ``max_words_per_segment`` words, when it spans at least
    ``max_duration_per_segment`` seconds, or at the last word. Segments whose
    text is empty are dropped and do not consume an order number.
    """
    words = list(words)
    segments: list[TranscriptSegment] = []
    pending: list[WordToken] = []

    for i, word in enumerate(words):
        pending.append(word)
        text = word.text or ''
        duration = (word.end or 0) - (pending[0].start or 0)

        should_close = (
            text.endswith(SENTENCE_END_CHARS)
            or len(pending) >= max_words_per_segment
            or duration >= max_duration_per_segment
            or i == len(words) - 1
        )
        if not should_close:
            continue

        segment = _build_segment(pending, len(segments))
        if segment is not None:
            segments.append(segment)
        pending = []

    logger.debug("Grouped %d words into %d segments", len(words), len(segments))
    return segments


def format_timestamp(seconds: float) -> str:
    """Render seconds as M:SS / H:MM:SS for transcript listings."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"
