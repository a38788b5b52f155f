"""
Byte-based audio chunking.
Audio larger than one inference call is split into fixed-size chunks,
each (after the first) carrying a 10% leading overlap so words straddling a
boundary are less likely to be cut. Overlapped words are not deduplicated.
"""

import math
import logging
from typing import Iterator

from vidtalk.core.constants import CHUNK_SIZE_BYTES, CHUNK_OVERLAP_RATIO
from vidtalk.core.models import AudioChunk

logger = logging.getLogger(__name__)


def needs_chunking(size: int, limit: int = CHUNK_SIZE_BYTES) -> bool:
    """Check if an audio buffer needs chunking based on its size."""
    return size > limit


def chunk_overlap(limit: int = CHUNK_SIZE_BYTES) -> int:
    return math.floor(limit * CHUNK_OVERLAP_RATIO)


def count_chunks(size: int, limit: int = CHUNK_SIZE_BYTES) -> int:
    if not needs_chunking(size, limit):
        return 1
    return math.ceil(size / limit)


def split_audio_bytes(data: bytes, limit: int = CHUNK_SIZE_BYTES) -> Iterator[AudioChunk]:
    """
    Lazily yield chunks of ``data``.

    Chunk i spans [max(0, i*limit - overlap), min((i+1)*limit, len(data))).
    A buffer no larger than ``limit`` comes back as a single chunk.
    """
    if limit <= 0:
        raise ValueError(f"chunk limit must be positive, got {limit}")

    size = len(data)
    if not needs_chunking(size, limit):
        yield AudioChunk(idx=0, start=0, end=size, data=data)
        return

    overlap = chunk_overlap(limit)
    total = count_chunks(size, limit)
    logger.debug("Splitting %d bytes into %d chunks (overlap %d)", size, total, overlap)

    for idx in range(total):
        start = max(0, idx * limit - overlap)
        end = min((idx + 1) * limit, size)
        yield AudioChunk(idx=idx, start=start, end=end, data=data[start:end])
