"""
Merge per-chunk transcriptions into a single result.
Word timestamps are concatenated as reported; no offsetting and no
deduplication of words repeated in the chunk overlap.
"""

import logging

from vidtalk.core.models import ChunkTranscript, TranscriptionResult

logger = logging.getLogger(__name__)


def merge_chunk_transcripts(chunks: list[ChunkTranscript]) -> TranscriptionResult:
    """Merge chunk transcripts in order."""
    texts = []
    words = []
    language = None

    for chunk in chunks:
        texts.append(chunk.text)
        if chunk.words:
            words.extend(chunk.words)
        if language is None and chunk.language:
            language = chunk.language

    merged = TranscriptionResult(
        full_text=' '.join(texts),
        words=words,
        language=language,
    )
    if len(chunks) > 1:
        logger.debug("Merged %d chunks: %d chars, %d words",
                     len(chunks), len(merged.full_text), merged.word_count)
    return merged
